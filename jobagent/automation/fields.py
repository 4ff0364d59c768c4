from __future__ import annotations

from functools import lru_cache
import logging
import os
import re
import tempfile
from typing import Any, Protocol

from fpdf import FPDF
from pydantic import AliasChoices, BaseModel, Field, ValidationError

from jobagent.services.oracle import ClassificationOracle, get_field_detection_oracle

logger = logging.getLogger(__name__)

MAX_HTML_CHARS = 10_000
DETECTION_TEMPERATURE = 0.1
DETECTION_MAX_TOKENS = 1000

SYSTEM_PROMPT = "You are a form field detection expert. Return only valid JSON."
USER_PROMPT_TEMPLATE = """Identify the job application form fields in this HTML: full name, email, phone,
resume/CV file upload, GitHub or portfolio URL, LinkedIn URL, location.
For each field give a specific CSS selector (prefer id or name attributes), the input type
(text, email, tel, file, textarea) and a confidence between 0 and 1.
Return JSON: {{"fields": [{{"fieldType": "name", "type": "text", "selector": "input[name='full_name']", "confidence": 0.9}}]}}

HTML:
{html}"""

LABEL_TO_PROFILE_FIELD = {
    "name": "full_name",
    "full_name": "full_name",
    "fullname": "full_name",
    "email": "email",
    "phone": "phone",
    "phone_number": "phone",
    "github": "github_url",
    "portfolio": "github_url",
    "github_url": "github_url",
    "linkedin": "linkedin_url",
    "linkedin_url": "linkedin_url",
    "location": "location",
}
RESUME_LABELS = {"resume", "cv"}


class FieldDetectionError(Exception):
    """Raised when the detector's answer cannot be turned into form fields."""


class FormField(BaseModel):
    label: str = Field(validation_alias=AliasChoices("fieldType", "label"))
    selector: str
    input_type: str = Field(default="text", validation_alias=AliasChoices("type", "input_type"))
    confidence: float = 0.0


class DetectedFields(BaseModel):
    fields: list[FormField] = Field(default_factory=list)


class FieldDetector(Protocol):
    async def detect(self, html: str) -> list[FormField]: ...


class OracleFieldDetector:
    def __init__(self, oracle: ClassificationOracle) -> None:
        self.oracle = oracle

    async def detect(self, html: str) -> list[FormField]:
        if len(html) > MAX_HTML_CHARS:
            html = html[:MAX_HTML_CHARS] + "...[truncated]"
        content = await self.oracle.complete(
            system_prompt=SYSTEM_PROMPT,
            user_prompt=USER_PROMPT_TEMPLATE.format(html=html),
            temperature=DETECTION_TEMPERATURE,
            max_tokens=DETECTION_MAX_TOKENS,
            json_response=True,
        )
        try:
            detected = DetectedFields.model_validate_json(_strip_code_fence(content))
        except ValidationError as exc:
            raise FieldDetectionError(f"invalid field detection response: {exc.error_count()} errors") from exc
        logger.info("detected form fields count=%s", len(detected.fields))
        return detected.fields


def normalize_label(label: str) -> str:
    return re.sub(r"[^a-z0-9]+", "_", label.lower()).strip("_")


def is_resume_field(field: FormField) -> bool:
    return normalize_label(field.label) in RESUME_LABELS


def profile_value(field: FormField, profile: dict[str, Any]) -> str | None:
    """Text to type into ``field``, or None when the label maps to nothing we know."""
    profile_field = LABEL_TO_PROFILE_FIELD.get(normalize_label(field.label))
    if profile_field is None:
        return None
    value = profile.get(profile_field)
    return str(value) if value else None


def write_resume_pdf(profile: dict[str, Any], directory: str | None = None) -> str:
    """Render the resume text to a temporary PDF; the caller deletes the file."""
    pdf = FPDF()
    pdf.set_margins(left=20, top=15, right=20)
    pdf.set_auto_page_break(auto=True, margin=15)
    pdf.add_page()
    name = _latin1(str(profile.get("full_name") or ""))
    if name:
        pdf.set_font("Helvetica", "B", 16)
        pdf.cell(0, 10, name, new_x="LMARGIN", new_y="NEXT", align="C")
    pdf.set_font("Helvetica", "", 11)
    pdf.multi_cell(0, 6, _latin1(str(profile.get("resume_text") or "")))

    handle, path = tempfile.mkstemp(prefix="resume-", suffix=".pdf", dir=directory)
    os.close(handle)
    try:
        pdf.output(path)
    except Exception:
        os.remove(path)
        raise
    return path


def _latin1(text: str) -> str:
    return text.encode("latin-1", "replace").decode("latin-1")


def _strip_code_fence(content: str) -> str:
    stripped = content.strip()
    if stripped.startswith("```"):
        stripped = stripped.strip("`")
        if stripped.lower().startswith("json"):
            stripped = stripped[4:]
    return stripped.strip()


@lru_cache
def get_field_detector() -> OracleFieldDetector:
    return OracleFieldDetector(get_field_detection_oracle())
