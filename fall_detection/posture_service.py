# fall_detection/posture_service.py
"""
Qualitative posture feedback from a hosted text model.

Talks to any OpenAI-compatible chat completions endpoint (Groq by default).
Credentials come from the .env file:

    POSTURE_API_KEY   required
    POSTURE_API_URL   optional, defaults to Groq
    POSTURE_MODEL     optional

Pass an instance as the `service` of PostureAnalyzer. Every failure here
raises; the analyzer catches it and falls back to angle-threshold scoring.
"""

from __future__ import annotations

import logging
import os
import re

import httpx
from dotenv import load_dotenv

from .posture import (
    IDEAL_NECK_ANGLE_MAX,
    IDEAL_NECK_ANGLE_MIN,
    IDEAL_SHOULDER_ALIGNMENT_MAX,
    IDEAL_SPINE_ANGLE_MAX,
    IDEAL_SPINE_ANGLE_MIN,
    BodyAngles,
    PostureFeedback,
)

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://api.groq.com/openai/v1/chat/completions"
DEFAULT_MODEL   = "llama-3.1-8b-instant"
DEFAULT_SCORE   = 75
MAX_ITEMS       = 3

_SCORE_RE  = re.compile(r"SCORE:\s*(\d+)")
_ISSUES_RE = re.compile(r"ISSUES:\s*(.+?)(?=RECOMMENDATIONS:|$)", re.DOTALL)
_RECS_RE   = re.compile(r"RECOMMENDATIONS:\s*(.+)", re.DOTALL)
_NUMBERED  = re.compile(r"^\s*\d+\.\s*(.+)$")


def build_prompt(angles: BodyAngles, state: str) -> str:
    return (
        "You are a posture analysis expert for elderly care.\n\n"
        "Current posture measurements:\n"
        f"- Neck angle: {int(angles.neck)}° (ideal: {IDEAL_NECK_ANGLE_MIN:.0f}-{IDEAL_NECK_ANGLE_MAX:.0f}°)\n"
        f"- Spine angle: {int(angles.spine)}° (ideal: {IDEAL_SPINE_ANGLE_MIN:.0f}-{IDEAL_SPINE_ANGLE_MAX:.0f}°)\n"
        f"- Shoulder alignment: {int(angles.shoulder_alignment)}° (ideal: <{IDEAL_SHOULDER_ALIGNMENT_MAX:.0f}°)\n"
        f"- Detected state: {state}\n\n"
        "Analyze this posture and provide:\n"
        "1. Overall posture score (0-100)\n"
        "2. List of specific issues (max 3, comma-separated)\n"
        "3. Actionable recommendations (max 3, numbered list)\n\n"
        "Keep recommendations simple and actionable for elderly users.\n"
        "Focus on immediate corrections they can make right now.\n\n"
        "Format your response EXACTLY as:\n"
        "SCORE: [number]\n"
        "ISSUES: [issue1, issue2, issue3]\n"
        "RECOMMENDATIONS:\n"
        "1. [recommendation1]\n"
        "2. [recommendation2]\n"
        "3. [recommendation3]"
    )


def parse_feedback(text: str) -> PostureFeedback:
    """
    Parse the SCORE / ISSUES / RECOMMENDATIONS reply format.

    Missing sections are tolerated: the score defaults to 75 and the
    lists come back empty. At most three issues and recommendations.
    """
    score = DEFAULT_SCORE
    match = _SCORE_RE.search(text)
    if match:
        score = int(match.group(1))

    issues: list[str] = []
    match = _ISSUES_RE.search(text)
    if match:
        issues = [part.strip() for part in match.group(1).strip().split(",") if part.strip()]

    recommendations: list[str] = []
    match = _RECS_RE.search(text)
    if match:
        for line in match.group(1).strip().splitlines():
            numbered = _NUMBERED.match(line)
            if numbered:
                recommendations.append(numbered.group(1).strip())

    return PostureFeedback(
        score=min(max(score, 0), 100),
        issues=issues[:MAX_ITEMS],
        recommendations=recommendations[:MAX_ITEMS],
    )


class TextModelPostureService:
    """
    Parameters
    ----------
    dotenv_path : str | None
        Optional explicit path to the .env file.
    timeout : float
        Seconds before the HTTP call is abandoned.
    client : httpx.Client | None
        Inject a client (tests, shared connection pools).
    """

    def __init__(
        self,
        dotenv_path: str | None = None,
        timeout: float = 10.0,
        client: httpx.Client | None = None,
    ):
        load_dotenv(dotenv_path=dotenv_path)

        self._api_key = os.environ.get("POSTURE_API_KEY", "")
        self._url     = os.environ.get("POSTURE_API_URL", DEFAULT_API_URL)
        self._model   = os.environ.get("POSTURE_MODEL", DEFAULT_MODEL)

        if not self._api_key:
            raise EnvironmentError("Missing required .env variable: POSTURE_API_KEY")

        self._client = client or httpx.Client(timeout=timeout)
        logger.info("Posture feedback service ready | model=%s", self._model)

    def __call__(self, angles: BodyAngles, state: str) -> PostureFeedback:
        payload = {
            "model": self._model,
            "messages": [{"role": "user", "content": build_prompt(angles, state)}],
            "temperature": 0.7,
            "top_p": 0.95,
            "max_tokens": 500,
        }
        headers = {"Authorization": f"Bearer {self._api_key}"}

        response = self._client.post(self._url, json=payload, headers=headers)
        response.raise_for_status()

        text = response.json()["choices"][0]["message"]["content"] or ""
        logger.debug("Posture feedback reply: %s", text)
        return parse_feedback(text)

    def close(self) -> None:
        self._client.close()
