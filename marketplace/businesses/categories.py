"""
Business categories.

Nine canonical groups, each with its list of subcategories. Legacy
names and slugs still sent by older clients are mapped through ALIASES.
"""
import re
import unicodedata
from typing import Dict, FrozenSet

CATEGORY_SLUGS: FrozenSet[str] = frozenset({
    "alimentos-consumo",
    "salud-cuidado-personal",
    "servicios-profesionales-generales",
    "boutiques-tiendas",
    "entretenimiento",
    "transporte-movilidad",
    "servicios-financieros",
    "educacion-cuidado",
    "mascotas",
})

ALIASES: Dict[str, str] = {
    "alimentos-y-consumo": "alimentos-consumo",
    "salud-y-cuidado-personal": "salud-cuidado-personal",
    "servicios": "servicios-profesionales-generales",
    "servicios-locales": "servicios-profesionales-generales",
    "boutiques-y-tiendas": "boutiques-tiendas",
    "transporte": "transporte-movilidad",
    "educacion-y-cuidado": "educacion-cuidado",
    "comida": "alimentos-consumo",
    "salud-fit": "salud-cuidado-personal",
    "Salud & Fit": "salud-cuidado-personal",
    "comercios": "boutiques-tiendas",
    "diversion": "entretenimiento",
    "movilidad": "transporte-movilidad",
    "finanzas": "servicios-financieros",
}

SUBCATEGORIES: Dict[str, FrozenSet[str]] = {
    "alimentos-consumo": frozenset({
        "antojitos-y-postres-locales", "cafeterias", "carnicerias", "comida-rapida", "dulcerias",
        "jugos-y-licuados", "neverias", "panaderias", "pescaderias", "pollerias",
        "productos-regionales-y-artesanales", "reposterias-y-pastelerias", "restaurantes",
        "supermercados-y-abarrotes", "tiendas-naturistas", "tortillerias", "vinos-y-licores",
    }),
    "salud-cuidado-personal": frozenset({
        "bienestar-y-fitness", "dentistas-y-odontologia", "esteticas-y-barberias", "farmacias",
        "fisioterapia-y-rehabilitacion", "hospitales-y-centros-de-salud", "laboratorios-clinicos",
        "medicina-estetica", "medicos-y-clinicas-generales", "nutricion-y-dietetica", "opticas",
        "psicologia-y-terapias-alternativas", "quiropracticos", "spas-y-masajes",
    }),
    "servicios-profesionales-generales": frozenset({
        "agencias-y-servicios-varios", "cuidado-personal-y-social", "eventos-y-producciones",
        "hogar-y-mantenimiento", "profesionales-y-consultorias", "reparacion-y-soporte",
        "seguridad-y-funerarias",
    }),
    "boutiques-tiendas": frozenset({
        "boutiques-y-ropa", "celulares-y-accesorios", "deportes", "electronica-y-tecnologia",
        "florerias", "joyerias-y-relojerias", "jugueterias", "librerias", "mueblerias-y-decoracion",
        "perfumerias-y-cosmeticos", "regalos-y-souvenirs", "zapaterias",
    }),
    "entretenimiento": frozenset({
        "actividades-recreativas", "balnearios-y-albercas-recreativas", "bares-y-antros",
        "centros-de-juegos-infantiles", "karaoke-y-salones-recreativos", "parques-tematicos-y-ferias",
    }),
    "transporte-movilidad": frozenset({
        "escuelas-de-manejo", "fletes-y-transporte-de-carga", "gruas-y-auxilio-vial",
        "renta-de-vehiculos", "repartidores", "seguros-para-autos", "servicios-para-autos", "taxis",
        "transporte-turistico-y-recreativo",
    }),
    "servicios-financieros": frozenset({
        "asesores-financieros-y-contables", "casas-de-empeno", "prestamos-y-creditos", "seguros",
    }),
    "educacion-cuidado": frozenset({
        "clases-particulares", "cursos-y-talleres", "escuela-de-idiomas",
        "escuelas-para-adultos-y-jovenes", "guarderias",
    }),
    "mascotas": frozenset({
        "adiestradores-y-entrenadores", "alimentos-especializados", "estetica-y-grooming",
        "guarderias-y-pensiones", "otros-servicios", "paseadores-de-perros", "tiendas-y-accesorios",
        "veterinarias-y-clinicas",
    }),
}

_NON_ALNUM = re.compile(r"[^a-z0-9]+")


def to_slug(value: str) -> str:
    """Lowercase, strip accents, collapse everything else into single dashes."""
    text = unicodedata.normalize("NFD", str(value or "").lower())
    text = "".join(ch for ch in text if not unicodedata.combining(ch))
    return _NON_ALNUM.sub("-", text).strip("-")


def canonical_category(value: str) -> str:
    """Canonical group slug for a name, slug or legacy alias; "" if unknown."""
    raw = str(value or "").strip()
    if not raw:
        return ""
    if raw in CATEGORY_SLUGS:
        return raw
    slug = to_slug(raw)
    if slug in CATEGORY_SLUGS:
        return slug
    return ALIASES.get(raw) or ALIASES.get(slug) or ""


def subcategory_belongs(category_slug: str, subcategory_slug: str) -> bool:
    allowed = SUBCATEGORIES.get(category_slug)
    return allowed is None or subcategory_slug in allowed
