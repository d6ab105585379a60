"""Spanish chat responses for the QuoteSmith conversation engine.

Templated responses built from the accumulated project details and
the project catalog's phrasing.
"""

from typing import List, Sequence

from models.conversation import ChatMessage, MessageRole
from models.project import ProjectDetails
from engines.project_catalog import (
    LOCATION_SLOT,
    TYPE_SLOT,
    SLOT_MATERIAL,
    dimension_label,
    format_number,
    get_project_spec,
    material_advantage,
    material_name,
    project_type_name,
)

GREETING_RESPONSE = (
    "¡Gracias por contactarnos! Para ayudarte con un estimado, necesito saber qué tipo de "
    "proyecto estás considerando. ¿Puedes decirme si es una cerca, terraza, techo o "
    "trabajo de concreto?"
)

FALLBACK_NEXT_REQUIRED = "necesito algunos detalles adicionales para completar el estimado"

MATERIAL_QUESTION_WORDS = ("materia", "tipo")


def known_project_info(details: ProjectDetails) -> List[str]:
    """List what is already known about the project, one line per fact."""
    known = []

    if details.type:
        known.append(f"Tipo de proyecto: {project_type_name(details.type)}")
    if details.material:
        known.append(f"Material: {material_name(details.material)}")

    if details.has_dimension("length"):
        known.append(f"Longitud: {format_number(details.dimensions['length'])} pies")
    if details.has_dimension("height"):
        known.append(f"Altura: {format_number(details.dimensions['height'])} pies")
    if details.has_dimension("squareFeet"):
        known.append(f"Área: {format_number(details.dimensions['squareFeet'])} pies cuadrados")
    if details.has_dimension("thickness"):
        known.append(f"Grosor: {format_number(details.dimensions['thickness'])} pulgadas")

    if details.location and not details.location.is_empty():
        parts = [p for p in (details.location.city, details.location.state) if p]
        known.append(f"Ubicación: {', '.join(parts)}")

    return known


def next_required_info(details: ProjectDetails) -> str:
    """Phrase the single next piece of information still needed."""
    if not details.type:
        return TYPE_SLOT.next_required

    spec = get_project_spec(details.type)
    if spec:
        missing = spec.missing_slots(details)
        if missing:
            return missing[0].next_required

    if LOCATION_SLOT.is_missing(details):
        return LOCATION_SLOT.next_required

    return FALLBACK_NEXT_REQUIRED


def estimate_ready_response(details: ProjectDetails) -> str:
    return (
        "¡Excelente! Basado en la información que me has proporcionado sobre tu proyecto de "
        f"{project_type_name(details.type)}, puedo ofrecerte un estimado preliminar. He creado "
        "un cálculo que incluye materiales y mano de obra. Puedes revisar los detalles "
        "completos en el panel de la derecha."
    )


def need_more_info_response(details: ProjectDetails) -> str:
    """Explain what is still missing when the user asks for a price too early."""
    known = known_project_info(details)
    registered = ""
    if known:
        registered = f"ya tengo registrado: {', '.join(known)}. Sin embargo, aún "
    return (
        f"Para generar un estimado preciso para tu proyecto de {project_type_name(details.type)}, "
        f"{registered}{next_required_info(details)}."
    )


def contextual_response(message: str, details: ProjectDetails) -> str:
    """Build a response reflecting known details and the next missing one."""
    if not details.type:
        return GREETING_RESPONSE

    spec = get_project_spec(details.type)
    known = known_project_info(details)
    known_clause = f"Hasta ahora tengo registrado: {', '.join(known)}. " if known else ""

    if spec is None:
        return (
            f"Gracias por la información sobre tu proyecto de {project_type_name(details.type)}. "
            f"{known_clause}Para brindarte un estimado preciso, {next_required_info(details)}."
        )

    lower_message = message.lower()

    for keywords, answer in spec.faqs:
        if any(keyword in lower_message for keyword in keywords):
            return answer

    if not spec.missing_slots(details):
        values = {
            "material": material_name(details.material),
            **{name: format_number(value) for name, value in details.dimensions.items()},
        }
        return spec.complete_response.format(**values)

    has_material_slot = any(slot.kind == SLOT_MATERIAL for slot in spec.slots)
    if has_material_slot and any(word in lower_message for word in MATERIAL_QUESTION_WORDS):
        if not details.material and spec.material_advice:
            return spec.material_advice
        if details.material:
            return (
                f"Ya tengo registrado que prefieres {spec.with_article} de "
                f"{material_name(details.material)}. Es una excelente elección por su "
                f"{material_advantage(details.material)}. Para continuar, "
                f"{next_required_info(details)}."
            )

    if details.material:
        return (
            f"Me has comentado que quieres {spec.with_article} de {material_name(details.material)}. "
            f"Para continuar, {next_required_info(details)}."
        )

    return f"{spec.intro} {known_clause}Para brindarte un estimado preciso, {next_required_info(details)}."


def context_summary(messages: Sequence[ChatMessage], details: ProjectDetails) -> str:
    """Summarize the project and the last three user messages on one line."""
    last_user_messages = [m.content for m in messages if m.role == MessageRole.USER][-3:]

    project = (
        f"Proyecto de {project_type_name(details.type)}"
        if details.type else "Proyecto no especificado"
    )
    dimensions = (
        ", ".join(f"{dimension_label(k)}: {format_number(v)}" for k, v in details.dimensions.items())
        if details.dimensions else "Dimensiones no especificadas"
    )
    material = (
        f"Material: {material_name(details.material)}"
        if details.material else "Material no especificado"
    )
    return f"{project}. {dimensions}. {material}. Últimos mensajes: {' | '.join(last_user_messages)}"
