import asyncio
import base64
import json
import os
import sys
import unittest
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

os.environ.setdefault("ANALYTICS_ENABLED", "0")
os.environ.setdefault("RATE_LIMIT_ENABLED", "0")

from app.ai.types import DocumentPayload  # noqa: E402
from app.schemas.screening import ScreeningCriteria  # noqa: E402
from app.screening.analyzer import (  # noqa: E402
    PROCESSING_ERROR_FLAG,
    ResumeAnalyzer,
    VerdictParseError,
    failure_verdict,
    is_processing_error,
    parse_verdict_payload,
)
from app.screening.intake import Document  # noqa: E402
from app.screening.prompt import build_screening_prompt  # noqa: E402

CRITERIA = ScreeningCriteria(
    role="Frontend Developer",
    min_exp=2,
    max_exp=10,
    custom_prompt="Led teams of 5+",
    filter_duplicates=True,
    filter_bias=True,
)


def _payload(**overrides) -> dict:
    data = {
        "name": "Jane Roe",
        "role": "Senior Frontend Engineer",
        "experience": 6,
        "matchScore": 84,
        "status": "passed",
        "flags": [],
        "agentNotes": {
            "screener": "6y matches range 2-10y",
            "biasCheck": "Clean",
            "tech": "React, TypeScript",
            "referee": "Strong match",
        },
    }
    data.update(overrides)
    return data


class FakeClient:
    model = "fake-model"

    def __init__(self, response=None, error: Exception | None = None, delay: float = 0.0):
        self._response = response
        self._error = error
        self._delay = delay
        self.calls: list[tuple[str, DocumentPayload]] = []

    async def generate_json(self, *, prompt: str, document: DocumentPayload) -> str:
        self.calls.append((prompt, document))
        if self._delay:
            await asyncio.sleep(self._delay)
        if self._error is not None:
            raise self._error
        return self._response


def _document() -> Document:
    return Document(filename="jane.pdf", mime_type="application/pdf", content=b"%PDF-1.7 resume bytes")


class ParseVerdictPayloadTests(unittest.TestCase):
    def test_valid_payload(self):
        verdict = parse_verdict_payload(json.dumps(_payload()))
        self.assertEqual(verdict.name, "Jane Roe")
        self.assertEqual(verdict.experience, 6)
        self.assertEqual(verdict.match_score, 84)
        self.assertEqual(verdict.status, "passed")
        self.assertEqual(verdict.flags, ())
        self.assertEqual(verdict.agent_notes.bias_check, "Clean")
        self.assertTrue(verdict.id)

    def test_ids_are_generated_per_verdict(self):
        raw = json.dumps(_payload())
        self.assertNotEqual(parse_verdict_payload(raw).id, parse_verdict_payload(raw).id)

    def test_code_fence_is_stripped(self):
        raw = "```json\n" + json.dumps(_payload(status="FAILED")) + "\n```"
        verdict = parse_verdict_payload(raw)
        self.assertEqual(verdict.status, "failed")

    def test_fractional_years_are_rounded(self):
        verdict = parse_verdict_payload(json.dumps(_payload(experience=5.6)))
        self.assertEqual(verdict.experience, 6)

    def test_optional_fields_default(self):
        data = _payload()
        data.pop("flags")
        data.pop("agentNotes")
        verdict = parse_verdict_payload(json.dumps(data))
        self.assertEqual(verdict.flags, ())
        self.assertEqual(verdict.agent_notes.referee, "")

    def test_rejects_malformed_payloads(self):
        missing_name = _payload()
        missing_name.pop("name")
        cases = [
            "",
            "not json at all",
            json.dumps([_payload()]),
            json.dumps(missing_name),
            json.dumps(_payload(status="pending")),
            json.dumps(_payload(experience=True)),
            json.dumps(_payload(experience="six")),
            json.dumps(_payload(matchScore=140)),
            json.dumps(_payload(flags="Duplicate")),
            json.dumps(_payload(name=42)),
            json.dumps(_payload()).replace('"matchScore": 84', '"matchScore": 1e400'),
            json.dumps(_payload(experience=float("nan"))),
        ]
        for raw in cases:
            with self.subTest(raw=raw[:40]):
                with self.assertRaises(VerdictParseError):
                    parse_verdict_payload(raw)


class FailureVerdictTests(unittest.TestCase):
    def test_reported_processing_error_flag_is_not_a_synthetic_failure(self):
        verdict = parse_verdict_payload(json.dumps(_payload(flags=[PROCESSING_ERROR_FLAG], status="failed")))
        self.assertEqual(verdict.flags, (PROCESSING_ERROR_FLAG,))
        self.assertFalse(is_processing_error(verdict))

    def test_shape(self):
        verdict = failure_verdict()
        self.assertEqual(verdict.status, "failed")
        self.assertEqual(verdict.match_score, 0)
        self.assertEqual(verdict.experience, 0)
        self.assertEqual(verdict.flags, (PROCESSING_ERROR_FLAG,))
        self.assertEqual(verdict.name, "Unknown Candidate (Error)")
        self.assertEqual(verdict.agent_notes.referee, "System Error")
        self.assertTrue(is_processing_error(verdict))


class PromptTests(unittest.TestCase):
    def test_prompt_embeds_criteria_and_policy(self):
        prompt = build_screening_prompt(CRITERIA)
        self.assertIn("Target Role: Frontend Developer", prompt)
        self.assertIn("Experience Range: 2 to 10 years.", prompt)
        self.assertIn('Custom Requirement: "Led teams of 5+"', prompt)
        self.assertIn("Check for Bias: Yes", prompt)
        self.assertIn("Check for Duplicates: Yes", prompt)
        self.assertIn("FAIL if experience is outside range (2-10).", prompt)
        self.assertIn("FAIL if matchScore < 60.", prompt)

    def test_disabled_checks_say_no(self):
        criteria = CRITERIA.model_copy(update={"filter_bias": False, "filter_duplicates": False})
        prompt = build_screening_prompt(criteria)
        self.assertIn("Check for Bias: No", prompt)
        self.assertIn("Check for Duplicates: No", prompt)


class ResumeAnalyzerTests(unittest.IsolatedAsyncioTestCase):
    async def test_success_sends_base64_document_once(self):
        client = FakeClient(response=json.dumps(_payload()))
        analyzer = ResumeAnalyzer(lambda: client, timeout_s=5)

        verdict = await analyzer.analyze(_document(), CRITERIA)

        self.assertEqual(verdict.status, "passed")
        self.assertEqual(len(client.calls), 1)
        prompt, payload = client.calls[0]
        self.assertIn("Frontend Developer", prompt)
        self.assertEqual(payload.mime_type, "application/pdf")
        self.assertEqual(base64.b64decode(payload.data_b64), b"%PDF-1.7 resume bytes")

    async def test_transport_error_becomes_failure_verdict(self):
        client = FakeClient(error=ConnectionError("boom"))
        analyzer = ResumeAnalyzer(lambda: client, timeout_s=5)

        verdict = await analyzer.analyze(_document(), CRITERIA)

        self.assertTrue(is_processing_error(verdict))
        self.assertEqual(len(client.calls), 1)

    async def test_unparseable_response_becomes_failure_verdict(self):
        analyzer = ResumeAnalyzer(lambda: FakeClient(response="Sorry, I can't help"), timeout_s=5)
        verdict = await analyzer.analyze(_document(), CRITERIA)
        self.assertEqual(verdict.flags, (PROCESSING_ERROR_FLAG,))

    async def test_provider_configuration_error_becomes_failure_verdict(self):
        def broken_factory():
            raise RuntimeError("OPENAI_API_KEY is missing")

        analyzer = ResumeAnalyzer(broken_factory, timeout_s=5)
        verdict = await analyzer.analyze(_document(), CRITERIA)
        self.assertTrue(is_processing_error(verdict))

    async def test_timeout_becomes_failure_verdict(self):
        client = FakeClient(response=json.dumps(_payload()), delay=1.0)
        analyzer = ResumeAnalyzer(lambda: client, timeout_s=0.01)

        verdict = await analyzer.analyze(_document(), CRITERIA)

        self.assertTrue(is_processing_error(verdict))

    async def test_external_status_is_trusted_by_default(self):
        # Out-of-range experience reported as passed: kept verbatim unless the local check is on.
        client = FakeClient(response=json.dumps(_payload(experience=1, status="passed")))
        analyzer = ResumeAnalyzer(lambda: client, timeout_s=5, local_policy_check=False)

        verdict = await analyzer.analyze(_document(), CRITERIA)

        self.assertEqual(verdict.status, "passed")
        self.assertEqual(verdict.flags, ())

    async def test_external_failed_status_is_not_overridden(self):
        client = FakeClient(response=json.dumps(_payload(experience=1, matchScore=95, status="failed")))
        for local_check in (False, True):
            with self.subTest(local_check=local_check):
                analyzer = ResumeAnalyzer(lambda: client, timeout_s=5, local_policy_check=local_check)
                verdict = await analyzer.analyze(_document(), CRITERIA)
                self.assertEqual(verdict.status, "failed")
                self.assertEqual(verdict.match_score, 95)

    async def test_local_policy_check_overrides_visibly(self):
        client = FakeClient(response=json.dumps(_payload(experience=1, status="passed")))
        analyzer = ResumeAnalyzer(lambda: client, timeout_s=5, local_policy_check=True)

        verdict = await analyzer.analyze(_document(), CRITERIA)

        self.assertEqual(verdict.status, "failed")
        self.assertEqual(len(verdict.flags), 1)
        self.assertTrue(verdict.flags[0].startswith("Policy Override: experience 1y outside 2-10y"))
        self.assertFalse(is_processing_error(verdict))

    async def test_local_policy_check_flags_low_score_and_bias(self):
        client = FakeClient(
            response=json.dumps(_payload(matchScore=55, flags=["Bias Detected: age"], status="passed"))
        )
        analyzer = ResumeAnalyzer(lambda: client, timeout_s=5, local_policy_check=True)

        verdict = await analyzer.analyze(_document(), CRITERIA)

        self.assertEqual(verdict.status, "failed")
        override = verdict.flags[-1]
        self.assertIn("match score 55 below 60", override)
        self.assertIn("bias flagged", override)


if __name__ == "__main__":
    unittest.main()
