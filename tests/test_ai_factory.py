import os
import sys
import unittest
from pathlib import Path
from unittest.mock import patch

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

os.environ.setdefault("ANALYTICS_ENABLED", "0")
os.environ.setdefault("RATE_LIMIT_ENABLED", "0")

from app.ai.config import load_ai_config  # noqa: E402
from app.ai.factory import get_ai_client  # noqa: E402

_KEYS = ("AI_PROVIDER", "AI_MODEL", "OPENAI_API_KEY", "GEMINI_API_KEY", "GOOGLE_API_KEY")


def _clean_env(**values) -> dict:
    env = {key: value for key, value in os.environ.items() if key not in _KEYS}
    env.update(values)
    return env


class AIConfigTests(unittest.TestCase):
    def test_provider_defaults(self):
        with patch.dict(os.environ, _clean_env(), clear=True):
            cfg = load_ai_config()
        self.assertEqual(cfg.provider, "openai")
        self.assertEqual(cfg.model, "gpt-4o-mini")

        with patch.dict(os.environ, _clean_env(AI_PROVIDER="Gemini"), clear=True):
            cfg = load_ai_config()
        self.assertEqual(cfg.provider, "gemini")
        self.assertEqual(cfg.model, "gemini-2.5-flash")

    def test_model_override(self):
        with patch.dict(os.environ, _clean_env(AI_MODEL="gpt-4.1"), clear=True):
            self.assertEqual(load_ai_config().model, "gpt-4.1")


class AIFactoryTests(unittest.TestCase):
    def test_unsupported_provider(self):
        with patch.dict(os.environ, _clean_env(AI_PROVIDER="watson"), clear=True):
            with self.assertRaises(ValueError):
                get_ai_client()

    def test_missing_keys_raise(self):
        for provider in ("openai", "gemini"):
            with self.subTest(provider=provider):
                with patch.dict(os.environ, _clean_env(AI_PROVIDER=provider), clear=True):
                    with self.assertRaises(RuntimeError):
                        get_ai_client()

    def test_openai_client_carries_model(self):
        with patch.dict(os.environ, _clean_env(OPENAI_API_KEY="sk-test"), clear=True):
            client = get_ai_client()
        self.assertEqual(client.model, "gpt-4o-mini")


if __name__ == "__main__":
    unittest.main()
