from pydantic import BaseModel
from pydantic.alias_generators import to_camel
from typing import Literal

AppointmentType = Literal["presentiel", "teleconsultation", "domicile"]
AppointmentStatus = Literal["scheduled", "confirmed", "in_progress", "completed", "cancelled", "no_show"]
AppointmentPaymentStatus = Literal["pending", "paid", "failed", "refunded"]
AppointmentPaymentMethod = Literal["card", "bank_transfer", "cash", "insurance"]
LocationType = Literal["cabinet", "teleconsultation", "domicile"]
DocumentType = Literal["prescription", "certificat", "bilan", "autre"]

PaymentStatus = Literal["pending", "processing", "succeeded", "failed", "cancelled", "refunded"]
Currency = Literal["eur", "usd", "gbp"]
PaymentMethod = Literal["card", "bank_transfer", "apple_pay", "google_pay"]
RefundReason = Literal["duplicate", "fraudulent", "requested_by_customer"]

Gender = Literal["homme", "femme", "autre"]

Specialization = Literal[
    "psychologie clinique",
    "psychologie cognitive",
    "psychologie comportementale",
    "psychologie de l'enfant",
    "psychologie de l'adolescent",
    "psychologie de la famille",
    "psychologie du couple",
    "psychologie du travail",
    "psychologie sociale",
    "psychiatrie générale",
    "psychiatrie de l'enfant",
    "psychiatrie de l'adolescent",
    "psychiatrie gériatrique",
    "psychiatrie légale",
    "addictologie",
    "psychotraumatologie",
    "neuropsychologie",
    "sexologie",
    "thérapie de couple",
    "thérapie familiale",
]
Language = Literal["français", "anglais", "espagnol", "allemand", "italien", "arabe", "portugais"]


class CamelModel(BaseModel):
    """Wire models use the camelCase document field names."""

    class Config:
        alias_generator = to_camel
        populate_by_name = True
        from_attributes = True


class Coordinates(CamelModel):
    latitude: float
    longitude: float


class Message(BaseModel):
    message: str
