from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

from jobagent.automation import fields
from jobagent.automation.fields import (
    FieldDetectionError,
    FormField,
    OracleFieldDetector,
    is_resume_field,
    profile_value,
    write_resume_pdf,
)

PROFILE = {"full_name": "Dana Doe", "email": "dana@example.com", "resume_text": "Ten years of Python."}


class ScriptedOracle:
    def __init__(self, content: str) -> None:
        self.content = content
        self.prompts: list[str] = []

    async def complete(self, *, system_prompt: str, user_prompt: str, temperature: float, max_tokens: int, json_response: bool = False) -> str:
        self.prompts.append(user_prompt)
        return self.content


def test_detector_reads_fenced_json_with_oracle_aliases() -> None:
    oracle = ScriptedOracle(
        '```json\n{"fields": [{"fieldType": "Full Name", "type": "text", "selector": "#name", "confidence": 0.9}]}\n```'
    )

    detected = asyncio.run(OracleFieldDetector(oracle).detect("<form>" + "x" * 20_000 + "</form>"))

    assert detected == [FormField(label="Full Name", selector="#name", input_type="text", confidence=0.9)]
    assert "...[truncated]" in oracle.prompts[0]


def test_detector_rejects_malformed_answer() -> None:
    with pytest.raises(FieldDetectionError):
        asyncio.run(OracleFieldDetector(ScriptedOracle('{"fields": [{"type": "text"}]}')).detect("<form></form>"))


def test_profile_values_follow_normalized_labels() -> None:
    assert profile_value(FormField(label="Full Name", selector="#n"), PROFILE) == "Dana Doe"
    assert profile_value(FormField(label="E-mail", selector="#e"), PROFILE) is None
    assert profile_value(FormField(label="phone", selector="#p"), PROFILE) is None
    assert is_resume_field(FormField(label="CV", selector="#cv", input_type="file"))


def test_resume_pdf_is_written_to_directory(tmp_path: Path) -> None:
    path = write_resume_pdf(PROFILE, directory=str(tmp_path))

    assert Path(path).parent == tmp_path
    assert Path(path).read_bytes().startswith(b"%PDF")


def test_resume_pdf_removes_temp_file_when_rendering_fails(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    def fail_output(self, *args, **kwargs):
        raise RuntimeError("disk full")

    monkeypatch.setattr(fields.FPDF, "output", fail_output)

    with pytest.raises(RuntimeError):
        write_resume_pdf(PROFILE, directory=str(tmp_path))
    assert list(tmp_path.iterdir()) == []
