"""Prompt construction for batch and meta summaries.

Output size scales with the number of pages summarized: more pages allow
more key points and participants, up to a fixed ceiling. Every prompt
variant (gemini/groq x batch/meta) states the output language, the exact
limits and the JSON shape expected back.
"""

import json
from typing import Literal, Sequence

from thread_summarizer.config import Provider
from thread_summarizer.constants import (
    BATCH_TRUNCATION_MARKER,
    DEFAULT_SUMMARY_LANGUAGE,
    MAX_KEY_POINTS_CEILING,
    MAX_PARTICIPANTS_CEILING,
)
from thread_summarizer.models.summary_models import BatchSummary, ScaledLimits
from thread_summarizer.models.thread_models import PageData
from thread_summarizer.services.content_extractor import format_posts_for_prompt

PromptKind = Literal["batch", "meta"]

# (max pages, key points, participants), checked in order
_SCALING_TIERS = (
    (3, 5, 5),
    (7, 7, 8),
    (15, 9, 10),
    (25, 12, 14),
)


def scaled_limits(page_count: int) -> ScaledLimits:
    """Key point and participant limits for a run over page_count pages."""
    for max_pages, key_points, participants in _SCALING_TIERS:
        if page_count <= max_pages:
            return ScaledLimits(max_key_points=key_points, max_participants=participants)
    return ScaledLimits(
        max_key_points=MAX_KEY_POINTS_CEILING,
        max_participants=MAX_PARTICIPANTS_CEILING,
    )


def _output_format(limits: ScaledLimits, kind: PromptKind) -> str:
    scope = "del hilo completo" if kind == "meta" else "en estas paginas"
    return f"""FORMATO DE SALIDA (JSON estrictamente valido):
{{
  "topic": "Una frase concisa con el tema principal {scope}.",
  "keyPoints": [
    "Punto clave 1",
    "Punto clave 2",
    "... (hasta {limits.max_key_points} puntos clave)"
  ],
  "participants": [
    {{ "name": "Usuario1", "contribution": "Su postura o aportacion principal" }},
    "... (hasta {limits.max_participants} participantes destacados)"
  ],
  "status": "Una frase sobre el estado del debate."
}}"""


def _gemini_batch(limits: ScaledLimits, language: str) -> str:
    return f"""Eres un analista de foros. Tu trabajo es resumir VARIAS PAGINAS de un hilo de Mediavida a partir de sus posts y devolver un objeto JSON valido.

{_output_format(limits, "batch")}

REGLAS ESTRICTAS:
- Devuelve SOLO el JSON, sin bloques de codigo markdown.
- Extrae el tema ("topic"), los puntos clave ("keyPoints"), los participantes destacados ("participants") y el estado del debate ("status") a partir de los posts de estas paginas.
- Resume TODOS los posts que te paso, con una vision global, e ignora posts sin contenido ("pole", "+1").
- Identifica los temas principales y como evolucionan entre paginas.
- Incluye como maximo {limits.max_key_points} puntos clave.
- Incluye como maximo {limits.max_participants} participantes, priorizando a los mas activos y relevantes.
- Si varios usuarios comparten exactamente la misma postura, agrupalos en una sola entrada (ej: "Pepito, Juanito").
- Si identificas al creador del hilo, mantén la etiqueta (OP) junto a su nombre.
- Los posts marcados con [👍N] tienen N votos de la comunidad; tenlos en cuenta para puntos clave y participantes.
- Usa las ESTADISTICAS DEL HILO como referencia objetiva, sin limitarte a quien mas postea.
- Detecta ironia y sarcasmo; no los presentes como apoyo literal.
- No inventes cifras: si un dato numerico no esta claro, descríbelo sin numero exacto.
- "status" debe ser una frase descriptiva sobre el clima y la direccion del debate.
- Responde en {language}."""


def _gemini_meta(limits: ScaledLimits, language: str) -> str:
    return f"""Eres un analista de foros. Te voy a dar RESUMENES PARCIALES (no posts) de diferentes secciones de un hilo largo de Mediavida. Tu trabajo es fusionarlos en UN UNICO RESUMEN GLOBAL coherente.

{_output_format(limits, "meta")}

REGLAS ESTRICTAS:
- Devuelve SOLO el JSON, sin bloques de codigo markdown.
- Combina los resumenes parciales en UN UNICO resumen sin repetir informacion redundante.
- Si un tema evoluciona entre secciones, describe la evolucion.
- Incluye como maximo {limits.max_key_points} puntos clave, los mas relevantes de todo el hilo.
- Incluye como maximo {limits.max_participants} participantes, los MAS destacados de todo el hilo.
- Mantén agrupados a los usuarios que comparten postura y la etiqueta (OP) si aparece.
- Usa las ESTADISTICAS DEL HILO como referencia objetiva.
- No inventes estadisticas, cifras ni datos que no aparezcan en los resumenes parciales o en las estadisticas proporcionadas.
- "status" debe describir el estado final del debate considerando toda su evolucion.
- Responde en {language}."""


def _groq_batch(limits: ScaledLimits, language: str) -> str:
    return f"""Analiza varias paginas de un hilo de Mediavida y devuelve SOLO JSON valido.

{_output_format(limits, "batch")}

REGLAS:
- SOLO JSON. Empieza con "{{" y termina con "}}".
- A partir de los posts, extrae topic, keyPoints, participants y status.
- Maximo {limits.max_key_points} puntos clave y maximo {limits.max_participants} participantes.
- Cada punto clave en 1-3 frases breves con argumentos concretos; evita frases genericas.
- Participantes: actividad + impacto + votos [👍N]. Agrupa posturas identicas y conserva (OP).
- Usa las ESTADISTICAS DEL HILO como referencia.
- Precision factual: no inventes cifras ni mezcles contextos.
- Responde 100% en {language}."""


def _groq_meta(limits: ScaledLimits, language: str) -> str:
    return f"""Te paso resumenes parciales (no posts) de un hilo largo. Fusionalos en UN UNICO resumen global en JSON valido.

{_output_format(limits, "meta")}

REGLAS:
- SOLO JSON. Empieza con "{{" y termina con "}}".
- Combina los parciales sin repetir y conserva la evolucion entre tramos.
- Maximo {limits.max_key_points} puntos clave y maximo {limits.max_participants} participantes.
- Usa las ESTADISTICAS DEL HILO como referencia objetiva.
- No inventes estadisticas, cifras ni datos que no esten en los resumenes parciales.
- Responde 100% en {language}."""


_BUILDERS = {
    ("gemini", "batch"): _gemini_batch,
    ("gemini", "meta"): _gemini_meta,
    ("groq", "batch"): _groq_batch,
    ("groq", "meta"): _groq_meta,
}


def build_prompt(
    provider: Provider,
    kind: PromptKind,
    page_count: int,
    language: str = DEFAULT_SUMMARY_LANGUAGE,
) -> str:
    """Instruction text for one (provider, kind) pair, scaled to page_count."""
    try:
        builder = _BUILDERS[(provider, kind)]
    except KeyError:
        raise ValueError(f"Unsupported prompt variant: {provider}/{kind}") from None
    return builder(scaled_limits(page_count), language)


def page_range_label(pages: Sequence[PageData]) -> str:
    if len(pages) == 1:
        return f"Pagina {pages[0].page_number}"
    return f"Paginas {pages[0].page_number}-{pages[-1].page_number}"


def build_batch_request(
    provider: Provider,
    page_count: int,
    thread_title: str,
    pages: Sequence[PageData],
    stats_block: str,
    max_chars: int,
    language: str = DEFAULT_SUMMARY_LANGUAGE,
) -> str:
    """Full batch-summary prompt: instructions, stats and the batch's posts."""
    content = ""
    for page in pages:
        formatted = format_posts_for_prompt(list(page.posts))
        content += f"\n--- PAGINA {page.page_number} ({page.post_count} posts) ---\n{formatted}\n"

    if len(content) > max_chars:
        content = content[:max_chars] + BATCH_TRUNCATION_MARKER

    stats_section = f"\n{stats_block}\n" if stats_block else ""
    return f"""{build_prompt(provider, "batch", page_count, language)}

---
TITULO DEL HILO: {thread_title} ({page_range_label(pages)})
{stats_section}
POSTS:
{content}"""


def build_meta_request(
    provider: Provider,
    page_count: int,
    thread_title: str,
    partials: Sequence[tuple[str, BatchSummary]],
    from_page: int,
    to_page: int,
    stats_block: str,
    language: str = DEFAULT_SUMMARY_LANGUAGE,
) -> str:
    """Full meta-summary prompt over labelled partial summaries."""
    formatted = "\n\n".join(
        f"--- {label} ---\n"
        + json.dumps(
            summary.model_dump(by_alias=True, exclude={"participants": {"__all__": {"avatar_url"}}}),
            ensure_ascii=False,
        )
        for label, summary in partials
    )
    return f"""{build_prompt(provider, "meta", page_count, language)}

---
TITULO DEL HILO: {thread_title}
RANGO DE PAGINAS: {from_page} a {to_page}

{stats_block}

RESUMENES PARCIALES:
{formatted}"""
