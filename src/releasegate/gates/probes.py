"""Default functional probes that exercise the target application over HTTP."""

from __future__ import annotations

from typing import Any, Optional

from releasegate.config import TargetConfig
from releasegate.evidence.provider import EvidenceProvider
from releasegate.exceptions import ProbeSkipped
from releasegate.target import TargetClient

from .functionality_gate import FunctionalProbe

MAX_LOAD_TIME_MS = 5000
MIN_GENERATED_CHARS = 50
MISSING_PATH = "/__releasegate_missing_route__"

GENERATION_PAYLOAD = {
    "platform": "YouTube",
    "topic": "Quality Gate Testing",
    "duration": 5,
    "tone": "professional",
}


class FunctionalProbeSuite:
    """The standard functional checks, bound to one target."""

    def __init__(
        self,
        client: TargetClient,
        provider: Optional[EvidenceProvider] = None,
    ):
        self.client = client
        self.target = client.target
        self.provider = provider

    async def _get_ok(self, path: str) -> dict[str, Any]:
        response, elapsed_ms = await self.client.get(path)
        if response.status_code >= 400:
            raise RuntimeError(f"GET {path} returned HTTP {response.status_code}")
        return {"path": path, "status": response.status_code, "elapsed_ms": round(elapsed_ms, 1)}

    async def application_load(self) -> dict[str, Any]:
        response, elapsed_ms = await self.client.get("/")
        if response.status_code >= 400:
            raise RuntimeError(f"Application returned HTTP {response.status_code}")
        if not response.text.strip():
            raise RuntimeError("Application returned an empty document")
        return {"status": response.status_code, "elapsed_ms": round(elapsed_ms, 1)}

    async def navigation(self) -> list[dict[str, Any]]:
        if not self.target.navigation_paths:
            raise RuntimeError("No navigation paths configured")
        return [await self._get_ok(path) for path in self.target.navigation_paths]

    async def user_journey(self) -> dict[str, Any]:
        if self.provider is not None:
            steps = await self.provider.replay_user_journey()
            if steps:
                for index, step in enumerate(steps, start=1):
                    if not step.success:
                        raise RuntimeError(f"User journey failed at step {index}: {step.step_name}")
                return {"steps": len(steps)}

        paths = ["/"] + [p for p in (self.target.generation_path, self.target.form_path) if p]
        for index, path in enumerate(paths, start=1):
            try:
                await self._get_ok(path)
            except Exception as e:
                raise RuntimeError(f"User journey failed at step {index}: {e}") from e
        return {"steps": len(paths)}

    async def ai_generation(self) -> dict[str, Any]:
        if not self.target.generation_path:
            raise ProbeSkipped("AI Generation Test", "no generation_path configured")
        response, elapsed_ms = await self.client.request(
            "POST", self.target.generation_path, json=GENERATION_PAYLOAD, timeout=30.0
        )
        if response.status_code >= 400:
            raise RuntimeError(f"Generation endpoint returned HTTP {response.status_code}")
        if len(response.text.strip()) < MIN_GENERATED_CHARS:
            raise RuntimeError("AI generation failed or produced insufficient content")
        return {"chars": len(response.text), "elapsed_ms": round(elapsed_ms, 1)}

    async def form_validation(self) -> dict[str, Any]:
        if not self.target.form_path:
            raise ProbeSkipped("Form Validation Test", "no form_path configured")
        response, _ = await self.client.request("POST", self.target.form_path, json={})
        if response.status_code >= 500:
            raise RuntimeError(f"Empty form submission caused HTTP {response.status_code}")
        if response.status_code < 400:
            raise RuntimeError("Empty form submission was accepted without validation")
        return {"status": response.status_code}

    async def error_handling(self) -> dict[str, Any]:
        response, _ = await self.client.get(MISSING_PATH)
        if response.status_code >= 500:
            raise RuntimeError(f"Unknown route caused HTTP {response.status_code}")
        return {"status": response.status_code}

    async def responsive_layout(self) -> dict[str, Any]:
        response, _ = await self.client.get("/")
        if 'name="viewport"' not in response.text and "name='viewport'" not in response.text:
            raise RuntimeError("Viewport meta tag not found - responsive design may not work")
        return {"viewport_meta": True}

    async def performance(self) -> dict[str, Any]:
        load_time_ms: Optional[float] = None
        if self.provider is not None:
            metrics = await self.provider.measure_performance()
            if metrics is not None:
                load_time_ms = metrics.load_time_ms
        if load_time_ms is None:
            _, load_time_ms = await self.client.get("/")
        if load_time_ms > MAX_LOAD_TIME_MS:
            raise RuntimeError(
                f"Load time too slow: {load_time_ms:.0f}ms (should be under {MAX_LOAD_TIME_MS}ms)"
            )
        return {"load_time_ms": round(load_time_ms, 1)}


def default_functional_probes(
    target: TargetConfig,
    provider: Optional[EvidenceProvider] = None,
    client: Optional[TargetClient] = None,
) -> list[FunctionalProbe]:
    """Build the standard ordered probe registry; the first four are critical."""
    suite = FunctionalProbeSuite(client or TargetClient(target), provider)
    return [
        FunctionalProbe("Application Load Test", suite.application_load, 10.0, critical=True),
        FunctionalProbe("Navigation Test", suite.navigation, 5.0, critical=True),
        FunctionalProbe("User Journey Test", suite.user_journey, 15.0, critical=True),
        FunctionalProbe("AI Generation Test", suite.ai_generation, 30.0, critical=True),
        FunctionalProbe("Form Validation Test", suite.form_validation, 5.0),
        FunctionalProbe("Error Handling Test", suite.error_handling, 10.0),
        FunctionalProbe("Responsive Design Test", suite.responsive_layout, 5.0),
        FunctionalProbe("Performance Test", suite.performance, 10.0),
    ]
