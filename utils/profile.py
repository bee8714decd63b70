"""
Registration profile: the closed set of optional fields a signup or profile
update may carry. Request JSON uses camelCase keys.
"""
from dataclasses import dataclass, fields
from typing import Optional

from utils.errors import ValidationError
from utils.validators import validate_age, validate_name, validate_phone

# JSON key -> attribute name
JSON_KEYS = {
    'name': 'name',
    'phone': 'phone',
    'age': 'age',
    'gender': 'gender',
    'bloodType': 'blood_type',
    'address': 'address',
    'emergencyContact': 'emergency_contact',
    'allergies': 'allergies',
    'medicalConditions': 'medical_conditions',
}

MAX_LENGTHS = {
    'gender': 20,
    'blood_type': 10,
    'emergency_contact': 255,
    'address': 1000,
    'allergies': 2000,
    'medical_conditions': 2000,
}


@dataclass(frozen=True)
class RegistrationProfile:
    name: Optional[str] = None
    phone: Optional[str] = None
    age: Optional[int] = None
    gender: Optional[str] = None
    blood_type: Optional[str] = None
    address: Optional[str] = None
    emergency_contact: Optional[str] = None
    allergies: Optional[str] = None
    medical_conditions: Optional[str] = None

    @classmethod
    def from_json(cls, data):
        """
        Build from request JSON, trimming strings and validating each field
        present. Unknown keys are ignored. Raises ValidationError listing
        every bad field.
        """
        values = {}
        errors = []
        for key, attr in JSON_KEYS.items():
            raw = data.get(key)
            if raw is None or (isinstance(raw, str) and not raw.strip()):
                continue
            if attr == 'age':
                age = validate_age(raw)
                if age is None:
                    errors.append({'field': key, 'message': 'Age must be between 1 and 150.'})
                else:
                    values[attr] = age
                continue
            if not isinstance(raw, str):
                errors.append({'field': key, 'message': f'{key} must be a string.'})
                continue
            value = raw.strip()
            if attr == 'name' and not validate_name(value):
                errors.append({'field': key, 'message': 'Name must be between 2 and 100 characters.'})
            elif attr == 'phone' and not validate_phone(value):
                errors.append({'field': key, 'message': 'Please provide a valid phone number.'})
            elif attr in MAX_LENGTHS and len(value) > MAX_LENGTHS[attr]:
                errors.append({'field': key, 'message': f'{key} is too long.'})
            else:
                values[attr] = value
        if errors:
            raise ValidationError(details=errors)
        return cls(**values)

    def provided(self):
        """Attribute -> value for the fields that were set."""
        return {f.name: getattr(self, f.name) for f in fields(self) if getattr(self, f.name) is not None}

    def apply_to(self, model):
        """Copy the set fields onto a User or PendingRegistration row."""
        for attr, value in self.provided().items():
            setattr(model, attr, value)
        return model

    @classmethod
    def from_model(cls, model):
        return cls(**{f.name: getattr(model, f.name) for f in fields(cls)})
