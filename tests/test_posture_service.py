"""
Unit tests for fall_detection.posture_service
"""
from unittest.mock import MagicMock

import httpx
import pytest

from fall_detection.posture import BodyAngles, PostureAnalyzer
from fall_detection.posture_service import TextModelPostureService, build_prompt, parse_feedback
from fall_detection.synthetic import standing_frame

REPLY = """SCORE: 62
ISSUES: Forward head posture, Rounded shoulders, Slouching, Leaning left
RECOMMENDATIONS:
1. Pull your chin back gently
2. Roll your shoulders back
3. Sit with your back against the chair
4. Take a short walk
"""


class TestParseFeedback:

    def test_full_reply(self):
        feedback = parse_feedback(REPLY)
        assert feedback.score == 62
        assert feedback.issues == ["Forward head posture", "Rounded shoulders", "Slouching"]
        assert feedback.recommendations == [
            "Pull your chin back gently",
            "Roll your shoulders back",
            "Sit with your back against the chair",
        ]

    def test_missing_sections_use_defaults(self):
        feedback = parse_feedback("I cannot help with that.")
        assert feedback.score == 75
        assert feedback.issues == []
        assert feedback.recommendations == []

    def test_score_is_clamped(self):
        assert parse_feedback("SCORE: 250").score == 100


class TestBuildPrompt:

    def test_contains_measurements_and_format(self):
        prompt = build_prompt(BodyAngles(140.4, 158.9, 12.0), "forward_head")
        assert "Neck angle: 140°" in prompt
        assert "Spine angle: 158°" in prompt
        assert "Detected state: forward_head" in prompt
        assert "SCORE: [number]" in prompt


class TestTextModelPostureService:

    @pytest.fixture
    def env(self, monkeypatch, tmp_path):
        monkeypatch.setenv("POSTURE_API_KEY", "test-key")
        monkeypatch.delenv("POSTURE_API_URL", raising=False)
        monkeypatch.delenv("POSTURE_MODEL", raising=False)
        return str(tmp_path / "missing.env")

    def test_missing_key_raises(self, monkeypatch, tmp_path):
        monkeypatch.delenv("POSTURE_API_KEY", raising=False)
        with pytest.raises(EnvironmentError):
            TextModelPostureService(dotenv_path=str(tmp_path / "missing.env"))

    def test_posts_prompt_and_parses_reply(self, env):
        response = MagicMock()
        response.json.return_value = {"choices": [{"message": {"content": REPLY}}]}
        client = MagicMock()
        client.post.return_value = response

        service = TextModelPostureService(dotenv_path=env, client=client)
        feedback = service(BodyAngles(140.0, 160.0, 3.0), "forward_head")

        assert feedback.score == 62
        url = client.post.call_args[0][0]
        kwargs = client.post.call_args[1]
        assert url.endswith("/chat/completions")
        assert kwargs["headers"]["Authorization"] == "Bearer test-key"
        assert "forward_head" in kwargs["json"]["messages"][0]["content"]
        response.raise_for_status.assert_called_once()

    def test_http_error_triggers_analyzer_fallback(self, env):
        request = httpx.Request("POST", "https://example.invalid")
        client = MagicMock()
        client.post.side_effect = httpx.ConnectTimeout("timed out", request=request)

        service = TextModelPostureService(dotenv_path=env, client=client)
        result = PostureAnalyzer(service).analyze(standing_frame())

        assert result.score == 100
        assert result.issues == ("Good posture",)
