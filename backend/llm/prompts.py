"""Prompt registry for sensitive-entity identification.

Every analysis prompt is built from shared layers (goal, confidence rubric,
severity colours, context) plus a per-shape block that describes the fields
of the returned entities.  ``get_analysis_prompt(shape, ...)`` merges them
into the user message; ``SYSTEM_PROMPT`` is sent alongside it.
"""

from __future__ import annotations

from schemas.entities import ContentShape

SYSTEM_PROMPT = (
    "You are a privacy and data regulation lawyer that has to determine what "
    "fields are sensitive in a document based off the guidelines that are "
    "given to you. Always answer with a single JSON object and nothing else."
)

_GOAL = (
    "Goal\n"
    "Using the policy provided in REF:policies, analyze the {document} in "
    "REF:extract to identify all entities that qualify as sensitive. A sensitive "
    "entity is any field that may contain information deemed sensitive according "
    "to the policies, for example a person's real name, email address, postal "
    "address or any unique identifier. For each entity that meets this criteria, "
    "classify it by the category it corresponds to (eg: personal, financial, "
    "health) and provide references from REF:policies that justify the "
    "classification.\n"
)

_VALIDATION = (
    "Validation\n"
    "Calculate a confidence rating for each identified entity on a scale from 0 "
    "to 10, where 0-3 is low confidence, 4-7 medium confidence and 8-10 high "
    "confidence. Validate each assessment against the specific sections of "
    "REF:policies that support your confidence level.\n"
)

_COMMON_FIELDS = (
    "category: The category of the sensitive entity (e.g., personal, financial, health).\n"
    "reference: The policy section (with its identifier) that justifies the "
    "classification and the exact verbatim excerpt from REF:policies, in the "
    "format: \"<policy section header and identifier> - '<exact excerpt>'\".\n"
    "confidence: A confidence score from 0 to 10.\n"
    "thinking: A short summary of the thinking process.\n"
    "rankHex: A hex colour code representing the severity of the entity:\n"
    "- Red (#FC1514) = very sensitive\n"
    "- Yellow (#FFC659) = medium sensitivity\n"
    "- Green (#A9FF46) = not very sensitive\n"
)

_RETURN_OBJECT = (
    "Return Object\n"
    "Create a JSON object with an \"entities\" key containing an array of "
    "objects. Each object in the array should include the following keys:\n\n"
)

_CONTEXT = (
    "Context\n"
    "REF:policies\n"
    "{policies}\n\n"
    "REF:extract\n"
    "{extract}"
)

SHAPE_PROMPTS: dict[ContentShape, dict[str, str]] = {
    ContentShape.UNSTRUCTURED: {
        "document": "document",
        "fields": (
            "entity: The kind of the identified value, one of 'CREDIT_CARD_NUMBER', "
            "'PERSON', 'PERSON_TYPE', 'PHONE_NUMBER', 'ORGANIZATION', 'ADDRESS', "
            "'URL', 'IP_ADDRESS', 'DATETIME', 'EMAIL', 'QUANTITY'.\n"
            "text: The text that was identified as sensitive, word for word.\n"
            "Examples: 'John Doe', '123-456-7890', 'www.example.com'.\n"
        ),
        "warnings": (
            "1. Ensure each identified entity is classified correctly according to REF:policies.\n"
            "2. Provide the word-for-word excerpt from REF:policies that justifies each classification.\n"
            "3. The text field must be a word-for-word excerpt from REF:extract.\n"
            "4. Use the proper rankHex values for each entity.\n"
        ),
    },
    ContentShape.CSV: {
        "document": "CSV document",
        "fields": (
            "entity: The header of the identified sensitive column.\n"
            "path: The exact header of the column from the CSV (same casing).\n"
        ),
        "warnings": (
            "1. The path field must match the column header exactly, including letter casing.\n"
            "2. Ensure each identified entity is classified correctly according to REF:policies.\n"
            "3. Provide the word-for-word excerpt from REF:policies that justifies each classification.\n"
            "4. Use the proper rankHex values for each entity.\n"
            "5. Include only one path value per identified sensitive entity.\n"
        ),
    },
    ContentShape.JSON: {
        "document": "JSON document",
        "fields": (
            "path: The path to the identified entity. Array elements use [*], "
            "object fields use dots: 'pathToArray[*].field', 'objectPath.field', "
            "or just 'field' at the top level (keep the exact casing). Only one "
            "path per entity.\n"
            "entity: The simple path of the identified sensitive entity.\n"
        ),
        "warnings": (
            "1. Read the key/value pairs for meaning: \"name\": \"John Doe\" is a "
            "person's name, \"name\": \"Company X\" is a company name.\n"
            "2. Ensure each identified entity is classified correctly according to REF:policies.\n"
            "3. Provide the word-for-word excerpt from REF:policies that justifies each classification.\n"
            "4. Use the proper rankHex values for each entity.\n"
            "5. Include only one path value per identified sensitive entity.\n"
        ),
    },
    ContentShape.SPREADSHEET: {
        "document": "CSV spreadsheet document",
        "fields": (
            "entity: The cell value or column header identified as sensitive "
            "(not the entire column). Examples: 'First name', 'SIN'.\n"
            "ranges: One or more cell ranges covering the sensitive values, in "
            "A1 notation such as 'A2:A5'. Use a separate string for each "
            "continuous block. Example: ['A2:A5', 'B5:B10'].\n"
            "sheetName: The value of the 'Sheet Name:' field at the top of REF:extract.\n"
        ),
        "warnings": (
            "1. Always return ranges, never single cells.\n"
            "2. Ensure each identified entity is classified correctly according to REF:policies.\n"
            "3. Provide the word-for-word excerpt from REF:policies that justifies each classification.\n"
            "4. Use the proper rankHex values for each entity.\n"
        ),
    },
}


def get_analysis_prompt(shape: ContentShape, *, policies: str, extract: str) -> str:
    """Return the user prompt for identifying entities in *extract*."""
    parts = SHAPE_PROMPTS[ContentShape(shape)]
    sections = [
        _GOAL.format(document=parts["document"]),
        _VALIDATION,
        _RETURN_OBJECT + parts["fields"] + _COMMON_FIELDS,
        "Warnings\n" + parts["warnings"],
        _CONTEXT.format(policies=policies, extract=extract),
    ]
    return "\n---\n\n".join(sections)
