"""Project type catalog for QuoteSmith.

Each supported project type is one ProjectTypeSpec entry: detection
keywords, material synonyms, the slots the dialogue must fill, the
dimension sets that are enough for an estimate, Spanish phrasing and a
rule-of-thumb pricing rule. Adding a project type means adding an entry
to PROJECT_CATALOG.
"""

import re
from dataclasses import dataclass, field
from typing import Dict, Any, Optional, List, Set, Tuple, Union
import structlog

from models.project import ProjectDetails, ProjectType

logger = structlog.get_logger(__name__)


# =============================================================================
# Slots and questions
# =============================================================================

SLOT_DIMENSION = "dimension"
SLOT_MATERIAL = "material"
SLOT_TYPE = "type"
SLOT_LOCATION = "location"


@dataclass(frozen=True)
class Slot:
    """A piece of project information the dialogue asks for."""

    name: str
    kind: str
    topic: str
    question: str
    next_required: str

    def is_missing(self, details: ProjectDetails) -> bool:
        if self.kind == SLOT_DIMENSION:
            return not details.has_dimension(self.name)
        if self.kind == SLOT_MATERIAL:
            return not details.material
        if self.kind == SLOT_TYPE:
            return not details.type
        if self.kind == SLOT_LOCATION:
            return details.location is None or details.location.is_empty()
        return False


TYPE_SLOT = Slot(
    name="type",
    kind=SLOT_TYPE,
    topic="type",
    question="¿Qué tipo de proyecto estás considerando? ¿Una cerca, terraza, techo o trabajo de concreto?",
    next_required="necesito saber qué tipo de proyecto estás considerando",
)

LOCATION_SLOT = Slot(
    name="location",
    kind=SLOT_LOCATION,
    topic="location",
    question="¿En qué ciudad y estado se realizará el proyecto?",
    next_required="sería útil conocer la ubicación del proyecto para ajustar los precios según la región",
)

# Topic -> phrases that identify a question about it
QUESTION_TOPIC_KEYWORDS: Dict[str, Tuple[str, ...]] = {
    "length": ("longitud", "largo", "length"),
    "height": ("altura", "alto", "height"),
    "area": ("área", "area", "superficie", "pies cuadrados", "square feet"),
    "thickness": ("grosor", "espesor", "thickness"),
    "material": ("material",),
    "type": ("tipo de proyecto", "project type"),
    "location": ("ubicación", "ciudad", "estado", "location", "city"),
}


# =============================================================================
# Materials
# =============================================================================

MATERIAL_NAMES: Dict[str, str] = {
    "wood": "madera",
    "vinyl": "vinilo",
    "chain_link": "eslabones de cadena",
    "aluminum": "aluminio",
    "composite": "material compuesto",
    "pressure_treated_wood": "madera tratada a presión",
    "cedar": "cedro",
    "tropical_hardwood": "madera tropical",
    "asphalt_shingle": "tejas asfálticas",
    "metal": "metal",
    "ceramic_tile": "tejas de cerámica",
}

MATERIAL_ADVANTAGES: Dict[str, str] = {
    "wood": "apariencia natural y costo accesible",
    "vinyl": "bajo mantenimiento y durabilidad",
    "chain_link": "seguridad y economía",
    "aluminum": "resistencia a la corrosión y elegancia",
    "composite": "durabilidad y bajo mantenimiento",
    "pressure_treated_wood": "resistencia a la intemperie y costo accesible",
    "cedar": "belleza natural y resistencia a insectos",
    "tropical_hardwood": "dureza y larga vida útil",
    "asphalt_shingle": "buena relación entre costo y durabilidad",
    "metal": "larga vida útil y resistencia al fuego",
    "ceramic_tile": "durabilidad y aislamiento térmico",
}

DIMENSION_LABELS: Dict[str, str] = {
    "length": "Longitud",
    "width": "Ancho",
    "height": "Altura",
    "squareFeet": "Área",
    "thickness": "Grosor",
}


# =============================================================================
# Pricing
# =============================================================================

@dataclass(frozen=True)
class SampleMaterial:
    """Template line for a preliminary estimate's material list."""

    id: str
    name: str
    quantity: float
    unit: str
    unit_price: float
    description: str


@dataclass(frozen=True)
class PricingRule:
    """Rule-of-thumb price per unit of the size dimension.

    The total is split into material, labor and equipment shares.
    """

    size_dimension: str
    default_size: float
    default_price: float
    unit_prices: Dict[str, float] = field(default_factory=dict)
    default_material: Optional[str] = None
    material_share: float = 0.6
    labor_share: float = 0.35
    equipment_share: float = 0.05

    def price_for(self, material: Optional[str]) -> float:
        return self.unit_prices.get(material or self.default_material, self.default_price)


GENERIC_SAMPLE_MATERIALS: Tuple[SampleMaterial, ...] = (
    SampleMaterial("main_material", "Material principal", 50, "unidades", 20.99,
                   "Material principal para el proyecto"),
    SampleMaterial("support_materials", "Materiales de soporte", 25, "unidades", 15.99,
                   "Materiales para estructura de soporte"),
    SampleMaterial("hardware", "Herrajes y fijaciones", 1, "conjunto", 100.00,
                   "Elementos de fijación y unión"),
)

GENERIC_CONSTRUCTION_METHOD = (
    "Método de construcción profesional adaptado a las necesidades específicas "
    "del proyecto y condiciones del sitio."
)

GENERIC_CONSTRUCTION_STEPS: Tuple[str, ...] = (
    "Preparación del área de trabajo",
    "Instalación de materiales base",
    "Montaje de componentes estructurales",
    "Instalación de acabados",
    "Limpieza y revisión final",
)


# =============================================================================
# Project types
# =============================================================================

@dataclass(frozen=True)
class ProjectTypeSpec:
    """Everything the engines need to know about one project type."""

    key: str
    display_name: str
    with_article: str
    type_keywords: Tuple[str, ...]
    context_keywords: Tuple[str, ...]
    materials: Tuple[Tuple[str, str], ...]
    slots: Tuple[Slot, ...]
    estimate_dimension_sets: Tuple[Tuple[str, ...], ...]
    intro: str
    complete_response: str
    pricing: PricingRule
    material_advice: Optional[str] = None
    faqs: Tuple[Tuple[Tuple[str, ...], str], ...] = ()
    sample_materials: Tuple[SampleMaterial, ...] = GENERIC_SAMPLE_MATERIALS
    construction_method: str = GENERIC_CONSTRUCTION_METHOD
    construction_steps: Tuple[str, ...] = GENERIC_CONSTRUCTION_STEPS

    def has_estimate_dimensions(self, details: ProjectDetails) -> bool:
        return any(
            all(details.has_dimension(name) for name in dimension_set)
            for dimension_set in self.estimate_dimension_sets
        )

    def missing_slots(self, details: ProjectDetails) -> List[Slot]:
        return [slot for slot in self.slots if slot.is_missing(details)]

    def match_material(self, lower_message: str) -> Optional[str]:
        return match_material(lower_message, self.materials)


FENCING = ProjectTypeSpec(
    key=ProjectType.FENCING.value,
    display_name="cerca",
    with_article="una cerca",
    type_keywords=("cerca", "fence", "valla"),
    context_keywords=("cerca", "valla", "barda", "reja", "fence"),
    materials=(
        ("madera", "wood"),
        ("wood", "wood"),
        ("vinilo", "vinyl"),
        ("vinyl", "vinyl"),
        ("cadena", "chain_link"),
        ("chain link", "chain_link"),
        ("eslabones", "chain_link"),
        ("aluminio", "aluminum"),
        ("aluminum", "aluminum"),
    ),
    slots=(
        Slot("length", SLOT_DIMENSION, "length",
             "¿Cuál es la longitud total de la cerca que necesitas (en pies)?",
             "necesito conocer la longitud total de la cerca"),
        Slot("height", SLOT_DIMENSION, "height",
             "¿Qué altura necesitas para tu cerca (en pies)?",
             "necesito saber la altura que deseas para la cerca"),
        Slot("material", SLOT_MATERIAL, "material",
             "¿Qué material prefieres para tu cerca? ¿Madera, vinilo, cadena o aluminio?",
             "necesito saber qué material prefieres para la cerca"),
    ),
    estimate_dimension_sets=(("length",), ("squareFeet",)),
    intro="Las cercas son una gran manera de añadir privacidad y seguridad a tu propiedad.",
    complete_response=(
        "Perfecto, ya tengo la información principal para tu cerca de {material} de "
        "{length} pies de largo y {height} pies de altura. ¿Necesitas alguna "
        "característica especial como puertas o acabados específicos?"
    ),
    material_advice=(
        "Para cercas, ofrecemos varios materiales como madera, vinilo, aluminio y cadena. "
        "Cada uno tiene diferentes ventajas en términos de durabilidad, mantenimiento y "
        "costo. ¿Hay algún material que prefieras?"
    ),
    pricing=PricingRule(
        size_dimension="length",
        default_size=100,
        default_price=25,
        unit_prices={"wood": 25, "vinyl": 30, "chain_link": 15, "aluminum": 40},
        default_material="wood",
    ),
    sample_materials=(
        SampleMaterial("posts", "Postes de {material}", 10, "unidades", 15.99,
                       "Postes principales para soporte de la cerca"),
        SampleMaterial("panels", "Paneles de {material}", 20, "unidades", 45.99,
                       "Paneles para completar secciones de la cerca"),
        SampleMaterial("hardware", "Herrajes y fijaciones", 1, "conjunto", 120.00,
                       "Tornillos, clavos y soportes para instalación"),
        SampleMaterial("post_concrete", "Concreto para postes", 10, "bolsas", 8.99,
                       "Para fijar postes al suelo"),
    ),
    construction_method=(
        "Instalación profesional usando técnica de anclaje profundo para postes y montaje "
        "secuencial de paneles para garantizar estabilidad y durabilidad."
    ),
    construction_steps=(
        "Marcar las ubicaciones de los postes",
        "Excavar hoyos para los postes",
        "Colocar postes y fijarlos con concreto",
        "Instalar travesaños horizontales",
        "Montar paneles o tablones",
        "Instalar puertas y herrajes",
        "Aplicar tratamiento protector si es necesario",
    ),
)

DECKING = ProjectTypeSpec(
    key=ProjectType.DECKING.value,
    display_name="terraza",
    with_article="una terraza",
    type_keywords=("terraza", "deck", "patio"),
    context_keywords=("terraza", "deck", "entarimado", "plataforma"),
    materials=(
        ("compuesto", "composite"),
        ("composite", "composite"),
        ("tratada", "pressure_treated_wood"),
        ("pressure treated", "pressure_treated_wood"),
        ("cedro", "cedar"),
        ("cedar", "cedar"),
        ("tropical", "tropical_hardwood"),
    ),
    slots=(
        Slot("squareFeet", SLOT_DIMENSION, "area",
             "¿Cuál es el área aproximada de la terraza (en pies cuadrados)?",
             "necesito conocer el área aproximada de la terraza en pies cuadrados"),
        Slot("material", SLOT_MATERIAL, "material",
             "¿Prefieres madera tratada a presión, cedro o material compuesto para tu terraza?",
             "necesito saber qué material prefieres para la terraza"),
    ),
    estimate_dimension_sets=(("squareFeet",),),
    intro="Las terrazas son excelentes para disfrutar de tu espacio exterior.",
    complete_response=(
        "Excelente, ya tengo los detalles principales para tu terraza de {material} de "
        "{squareFeet} pies cuadrados. ¿Necesitarás barandas o escaleras para esta terraza?"
    ),
    material_advice=(
        "Para terrazas trabajamos con madera tratada a presión, cedro, maderas tropicales "
        "y material compuesto. ¿Cuál te interesa más?"
    ),
    faqs=(
        (("dura", "vida", "manteni"),
         "Las terrazas de material compuesto suelen durar más de 25 años y requieren menos "
         "mantenimiento que las de madera tratada, pero tienen un costo inicial más alto. "
         "La madera tratada es más económica pero necesitará sellado y mantenimiento cada "
         "2-3 años."),
    ),
    pricing=PricingRule(
        size_dimension="squareFeet",
        default_size=200,
        default_price=30,
        unit_prices={
            "pressure_treated_wood": 25,
            "composite": 40,
            "cedar": 30,
            "tropical_hardwood": 45,
        },
        default_material="pressure_treated_wood",
        material_share=0.55,
        labor_share=0.4,
        equipment_share=0.05,
    ),
    sample_materials=(
        SampleMaterial("deck_boards", "Tablas de {material}", 100, "unidades", 12.99,
                       "Tablas para la superficie de la terraza"),
        SampleMaterial("support_beams", "Vigas de soporte", 20, "unidades", 18.99,
                       "Estructura principal de soporte"),
        SampleMaterial("support_posts", "Pilares de soporte", 12, "unidades", 25.99,
                       "Soportes verticales para la estructura"),
        SampleMaterial("hardware", "Herrajes y fijaciones", 1, "conjunto", 150.00,
                       "Tornillos, clavos y soportes para instalación"),
    ),
    construction_method=(
        "Construcción con sistema de vigas y pilares distribuidos estratégicamente para "
        "soportar el peso de manera uniforme, con tablones instalados perpendicularmente "
        "a las vigas."
    ),
    construction_steps=(
        "Preparar el terreno y nivelarlo",
        "Instalar pilares de soporte",
        "Montar estructura de vigas principales",
        "Colocar vigas secundarias",
        "Instalar tablas de la superficie",
        "Añadir acabados y barandas",
        "Aplicar sellador protector",
    ),
)

ROOFING = ProjectTypeSpec(
    key=ProjectType.ROOFING.value,
    display_name="techo",
    with_article="un techo",
    type_keywords=("techo", "roof", "tejado"),
    context_keywords=("techo", "tejado", "cubierta", "roof"),
    materials=(
        ("tejas asfálticas", "asphalt_shingle"),
        ("asfalto", "asphalt_shingle"),
        ("asphalt", "asphalt_shingle"),
        ("shingle", "asphalt_shingle"),
        ("metal", "metal"),
        ("lámina", "metal"),
        ("cerámica", "ceramic_tile"),
        ("ceramic", "ceramic_tile"),
        ("tile", "ceramic_tile"),
    ),
    slots=(
        Slot("squareFeet", SLOT_DIMENSION, "area",
             "¿Cuál es el área aproximada del techo (en pies cuadrados)?",
             "necesito conocer el área aproximada del techo en pies cuadrados"),
        Slot("material", SLOT_MATERIAL, "material",
             "¿Qué tipo de material de techo te interesa? ¿Tejas asfálticas, metal o tejas de cerámica?",
             "necesito saber qué tipo de material prefieres para el techo"),
    ),
    estimate_dimension_sets=(("squareFeet",),),
    intro="Un buen techo protege toda tu propiedad.",
    complete_response=(
        "Perfecto, ya tengo la información principal para tu proyecto de techo de "
        "{material} de {squareFeet} pies cuadrados. ¿Hay alguna consideración adicional "
        "como claraboyas o chimeneas?"
    ),
    material_advice=(
        "Para techos ofrecemos tejas asfálticas, metal y tejas de cerámica. Las asfálticas "
        "son las más económicas y el metal dura más. ¿Cuál prefieres?"
    ),
    pricing=PricingRule(
        size_dimension="squareFeet",
        default_size=1500,
        default_price=10,
    ),
    construction_method=(
        "Instalación de capas de impermeabilización y material de techo con técnicas de "
        "solapamiento para garantizar resistencia a la intemperie."
    ),
)

CONCRETE = ProjectTypeSpec(
    key=ProjectType.CONCRETE.value,
    display_name="concreto",
    with_article="un proyecto de concreto",
    type_keywords=("concreto", "cemento", "concrete"),
    context_keywords=("concreto", "cemento", "losa", "banqueta", "slab", "driveway"),
    materials=(),
    slots=(
        Slot("squareFeet", SLOT_DIMENSION, "area",
             "¿Cuál es el área aproximada para el concreto (en pies cuadrados)?",
             "necesito conocer el área aproximada donde se aplicará el concreto"),
        Slot("thickness", SLOT_DIMENSION, "thickness",
             "¿Qué grosor necesitas para el concreto (en pulgadas)?",
             "necesito saber el grosor deseado para el concreto"),
    ),
    estimate_dimension_sets=(("squareFeet",),),
    intro="El concreto es ideal para entradas, patios y bases duraderas.",
    complete_response=(
        "Excelente, ya tengo los detalles principales para tu proyecto de concreto de "
        "{squareFeet} pies cuadrados y {thickness} pulgadas de grosor. ¿Necesitarás algún "
        "acabado especial para el concreto?"
    ),
    pricing=PricingRule(
        size_dimension="squareFeet",
        default_size=500,
        default_price=10,
        material_share=0.5,
        labor_share=0.4,
        equipment_share=0.1,
    ),
    construction_method=(
        "Preparación de encofrado, vertido de mezcla de concreto con aditivos para mayor "
        "resistencia, nivelación precisa y curado controlado."
    ),
)

# Catalog order is detection precedence
PROJECT_CATALOG: Dict[str, ProjectTypeSpec] = {
    spec.key: spec for spec in (FENCING, DECKING, ROOFING, CONCRETE)
}

# Every known material synonym, longest first
ALL_MATERIAL_SYNONYMS: Tuple[Tuple[str, str], ...] = tuple(sorted(
    {pair for spec in PROJECT_CATALOG.values() for pair in spec.materials}
    | {("madera", "wood"), ("tratada a presión", "pressure_treated_wood")},
    key=lambda pair: (-len(pair[0]), pair[0])
))


# =============================================================================
# Lookups
# =============================================================================

def get_project_spec(project_type: Optional[str]) -> Optional[ProjectTypeSpec]:
    if not project_type:
        return None
    return PROJECT_CATALOG.get(project_type)


def project_type_name(project_type: Optional[str]) -> str:
    """Get the Spanish display name of a project type."""
    spec = get_project_spec(project_type)
    if spec:
        return spec.display_name
    return project_type or "construcción"


def material_name(material: Optional[str]) -> str:
    return MATERIAL_NAMES.get(material, material or "")


def material_advantage(material: Optional[str]) -> str:
    return MATERIAL_ADVANTAGES.get(material, "calidad y durabilidad")


def dimension_label(name: str) -> str:
    return DIMENSION_LABELS.get(name, name)


def format_number(value: float) -> str:
    """Format a dimension or cost without a trailing '.0'."""
    if float(value).is_integer():
        return str(int(value))
    return f"{value:g}"


def match_material(lower_message: str, synonyms: Tuple[Tuple[str, str], ...]) -> Optional[str]:
    """Find the material whose longest synonym appears in the message."""
    best: Optional[Tuple[str, str]] = None
    for synonym, material in synonyms:
        if synonym in lower_message and (best is None or len(synonym) > len(best[0])):
            best = (synonym, material)
    return best[1] if best else None


def _starts_word(keyword: str, lower_message: str) -> bool:
    return re.search(r"\b" + re.escape(keyword), lower_message) is not None


def detect_project_type(lower_message: str, contextual: bool = False) -> Optional[str]:
    """Detect a project type from keywords, in catalog order.

    Args:
        lower_message: Lower-cased user message.
        contextual: Use the looser keywords accepted when the user is
            answering a project type question.
    """
    for spec in PROJECT_CATALOG.values():
        keywords = spec.context_keywords if contextual else spec.type_keywords
        if any(_starts_word(keyword, lower_message) for keyword in keywords):
            return spec.key
    return None


# =============================================================================
# Estimate readiness and questions
# =============================================================================

def _coerce_details(details: Union[ProjectDetails, Dict[str, Any]]) -> ProjectDetails:
    if isinstance(details, ProjectDetails):
        return details
    return ProjectDetails.model_validate(details or {})


def can_generate_estimate(details: Union[ProjectDetails, Dict[str, Any]]) -> bool:
    """Check if the details hold enough information for an estimate.

    Requires a known project type plus one of the type's minimum
    dimension sets. Types without a catalog entry never qualify.
    """
    details = _coerce_details(details)
    if not details.type:
        return False

    spec = get_project_spec(details.type)
    if spec is None:
        logger.warning("unsupported_project_type", project_type=details.type)
        return False

    return spec.has_estimate_dimensions(details)


def generate_questions(details: ProjectDetails) -> List[Slot]:
    """Build the candidate follow-up questions for the missing slots.

    While the project type is unknown only the type question is asked.
    The location question always comes last.
    """
    if not details.type:
        return [TYPE_SLOT]

    spec = get_project_spec(details.type)
    slots = spec.missing_slots(details) if spec else []
    if LOCATION_SLOT.is_missing(details):
        slots.append(LOCATION_SLOT)
    return slots


def question_topics(question: str) -> Set[str]:
    """Get the topics a question text refers to."""
    normalized = question.lower().strip()
    return {
        topic
        for topic, keywords in QUESTION_TOPIC_KEYWORDS.items()
        if any(keyword in normalized for keyword in keywords)
    }


def is_question_already_asked(
    question: str,
    asked_questions: Set[str],
    topic: Optional[str] = None
) -> bool:
    """Check if the question, or another one on the same topic, was asked.

    Args:
        question: Candidate question text.
        asked_questions: Normalized texts of questions already asked.
        topic: Topic of the candidate, when known.
    """
    normalized = question.lower().strip()
    if normalized in asked_questions:
        return True

    candidate_topics = question_topics(question)
    if topic:
        candidate_topics.add(topic)

    for asked in asked_questions:
        if candidate_topics & question_topics(asked):
            return True
    return False
