# models.py
# Result types for the classification pipeline and the MongoDB document layout.

import uuid
from dataclasses import dataclass, asdict
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

TIMESTAMP_FORMAT = '%Y-%m-%d %H:%M:%S'


# Structured replies requested from the completion service

class WasteClassification(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    waste_type: str = Field(alias="wasteType", description="The identified type of waste material.")
    confidence: float = Field(description="The confidence level of the classification (0-1).")
    details: str = Field(description="Detailed characteristics of the waste material derived from image analysis.")


class RecyclingInstructions(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    recycling_instructions: str = Field(
        alias="recyclingInstructions",
        description="Instructions on how to recycle the waste material.",
    )


@dataclass(frozen=True)
class ClassificationResult:
    waste_type: str
    confidence: float  # always within [0.85, 0.98]
    details: str

    def to_dict(self):
        return asdict(self)


@dataclass(frozen=True)
class InstructionResult:
    recycling_instructions: str


@dataclass(frozen=True)
class InstructionStep:
    position: int  # 1-based
    text: str


# MongoDB User Schema (for documentation/reference)

user_schema = {
    'name': 'str',  # User's full name
    'email': 'str',  # User's email address (unique)
    'password': 'str',  # werkzeug password hash
    'join_date': 'str',  # Date of registration (YYYY-MM-DD)
    'classifications': 0,  # Integer, total classifications
    'classification_history': [
        {
            'entry_id': 'str',  # uuid4 hex, addresses the entry for updates
            'image_url': 'str',  # JPEG thumbnail data URL, may be empty
            'waste_type': 'str',  # Type of waste classified
            'confidence': 0.0,  # Fraction in [0.85, 0.98], not a percentage
            'user_description': 'str',  # Free text the user added, may be empty
            'recycling_instructions': 'str',  # Raw instruction text
            'timestamp': 'str',  # Classification time (YYYY-MM-DD HH:MM:SS)
        }
    ],
}

# Note: This is for reference only. MongoDB is schemaless by default.


def new_user(name, email, password_hash):
    return {
        'name': name,
        'email': email,
        'password': password_hash,
        'join_date': datetime.now().strftime('%Y-%m-%d'),
        'classifications': 0,
        'classification_history': [],
    }


def new_history_entry(waste_type, confidence, recycling_instructions='', user_description='', image_url=''):
    return {
        'entry_id': uuid.uuid4().hex,
        'image_url': image_url or '',
        'waste_type': waste_type,
        'confidence': float(confidence),
        'user_description': user_description or '',
        'recycling_instructions': recycling_instructions or '',
        'timestamp': datetime.now().strftime(TIMESTAMP_FORMAT),
    }
