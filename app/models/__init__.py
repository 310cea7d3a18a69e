from app.models.application import Application
from app.models.application_status_history import ApplicationStatusHistory
from app.models.company import Company
from app.models.document import Document
from app.models.person import Person
from app.models.person_address import PersonAddress
from app.models.person_bank_account import PersonBankAccount
from app.models.person_employment import PersonEmployment
from app.models.person_reference import PersonReference

__all__ = [
    "Application",
    "ApplicationStatusHistory",
    "Company",
    "Document",
    "Person",
    "PersonAddress",
    "PersonBankAccount",
    "PersonEmployment",
    "PersonReference",
]
