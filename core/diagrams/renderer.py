#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Diagram Renderer - ordered fallback chain of render strategies.

Flow:
    source → MermaidValidator ──invalid──→ RenderResult(VALIDATION)
                 │ valid
                 ↓
    strategy 1 (remote service) ──fail──→ strategy 2 (local mmdc) ──fail──→ degrade

Each attempt carries its own timeout. DiagramRenderer.render never raises:
every failure comes back as a tagged RenderResult, and the caller keeps
the diagram source in place of the image.
"""

import asyncio
import base64
import shutil
import tempfile
from enum import Enum
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Protocol, Sequence

import httpx

from config.constants import RENDER_TIMEOUT_SECONDS, FETCH_USER_AGENT
from config.logging_config import get_logger

from .errors import DiagramValidationError, RenderError, RenderTransientError
from .validator import MermaidValidator, ValidationRule

logger = get_logger(__name__)


class RenderErrorKind(Enum):
    """Why a render attempt failed."""
    VALIDATION = "validation"
    TRANSIENT = "transient"            # network error or 5xx
    TIMEOUT = "timeout"
    HTTP_STATUS = "http_status"        # 4xx, not worth retrying elsewhere with same input
    EMPTY_RESPONSE = "empty_response"
    LOCAL_UNAVAILABLE = "local_unavailable"
    LOCAL_FAILED = "local_failed"
    NO_STRATEGY = "no_strategy"
    STRATEGY_FAILED = "strategy_failed"   # strategy raised RenderError


@dataclass
class RenderResult:
    """Either a complete image or a tagged failure, never both."""
    success: bool
    image_bytes: Optional[bytes] = None
    mime_type: Optional[str] = None
    error_kind: Optional[RenderErrorKind] = None
    error_message: Optional[str] = None
    strategy: Optional[str] = None
    violated_rule: Optional[ValidationRule] = None

    @classmethod
    def ok(cls, image_bytes: bytes, mime_type: str, strategy: str) -> "RenderResult":
        return cls(success=True, image_bytes=image_bytes, mime_type=mime_type, strategy=strategy)

    @classmethod
    def failure(
        cls,
        kind: RenderErrorKind,
        message: str,
        strategy: Optional[str] = None,
        violated_rule: Optional[ValidationRule] = None,
    ) -> "RenderResult":
        return cls(
            success=False, error_kind=kind, error_message=message,
            strategy=strategy, violated_rule=violated_rule,
        )


class RenderStrategy(Protocol):
    """
    One way of turning diagram source into image bytes.

    Implementations return a RenderResult, or raise RenderTransientError
    (retryable) or RenderError (permanent). Any other exception counts as
    TRANSIENT.
    """

    name: str

    async def attempt(self, source_code: str) -> RenderResult:
        ...


def _status_failure(name: str, response: httpx.Response) -> RenderResult:
    kind = RenderErrorKind.TRANSIENT if response.status_code >= 500 else RenderErrorKind.HTTP_STATUS
    return RenderResult.failure(
        kind, f"{name} returned HTTP {response.status_code}", strategy=name
    )


def _content_type(response: httpx.Response, default: str) -> str:
    content_type = response.headers.get("content-type", "")
    return content_type.split(";")[0].strip() or default


class MermaidInkStrategy:
    """Remote render via mermaid.ink: GET /img/<base64 source>."""

    name = "mermaid_ink"

    def __init__(
        self,
        base_url: str,
        image_type: str = "png",
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.image_type = image_type
        self.transport = transport

    def build_url(self, source_code: str) -> str:
        encoded = base64.urlsafe_b64encode(source_code.encode("utf-8")).decode("ascii")
        return f"{self.base_url}/img/{encoded}?type={self.image_type}"

    async def attempt(self, source_code: str) -> RenderResult:
        url = self.build_url(source_code)
        try:
            async with httpx.AsyncClient(
                transport=self.transport,
                headers={"User-Agent": FETCH_USER_AGENT},
                follow_redirects=True,
            ) as client:
                response = await client.get(url)
        except httpx.TimeoutException as e:
            return RenderResult.failure(RenderErrorKind.TIMEOUT, str(e), strategy=self.name)
        except httpx.HTTPError as e:
            return RenderResult.failure(RenderErrorKind.TRANSIENT, str(e), strategy=self.name)

        if not response.is_success:
            return _status_failure(self.name, response)
        if not response.content:
            return RenderResult.failure(
                RenderErrorKind.EMPTY_RESPONSE, "mermaid.ink returned no bytes", strategy=self.name
            )
        return RenderResult.ok(
            response.content, _content_type(response, f"image/{self.image_type}"), self.name
        )


class KrokiStrategy:
    """Remote render via Kroki: POST plain-text source to /mermaid/<format>."""

    name = "kroki"

    def __init__(
        self,
        base_url: str,
        output_format: str = "png",
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.output_format = output_format
        self.transport = transport

    async def attempt(self, source_code: str) -> RenderResult:
        url = f"{self.base_url}/mermaid/{self.output_format}"
        try:
            async with httpx.AsyncClient(
                transport=self.transport,
                headers={"User-Agent": FETCH_USER_AGENT},
            ) as client:
                response = await client.post(
                    url,
                    content=source_code.encode("utf-8"),
                    headers={"Content-Type": "text/plain"},
                )
        except httpx.TimeoutException as e:
            return RenderResult.failure(RenderErrorKind.TIMEOUT, str(e), strategy=self.name)
        except httpx.HTTPError as e:
            return RenderResult.failure(RenderErrorKind.TRANSIENT, str(e), strategy=self.name)

        if not response.is_success:
            return _status_failure(self.name, response)
        if not response.content:
            return RenderResult.failure(
                RenderErrorKind.EMPTY_RESPONSE, "kroki returned no bytes", strategy=self.name
            )
        default_mime = "image/svg+xml" if self.output_format == "svg" else f"image/{self.output_format}"
        return RenderResult.ok(response.content, _content_type(response, default_mime), self.name)


class LocalMermaidCliStrategy:
    """
    Local render with mermaid-cli (``mmdc``), producing SVG.

    Unavailable (not failed) when the binary is not on PATH.
    """

    name = "local_mmdc"

    def __init__(self, binary: str = "mmdc", timeout: float = RENDER_TIMEOUT_SECONDS):
        self.binary = binary
        self.timeout = timeout

    def resolve_binary(self) -> Optional[str]:
        return shutil.which(self.binary)

    async def attempt(self, source_code: str) -> RenderResult:
        binary = self.resolve_binary()
        if not binary:
            return RenderResult.failure(
                RenderErrorKind.LOCAL_UNAVAILABLE,
                f"'{self.binary}' not found on PATH",
                strategy=self.name,
            )

        with tempfile.TemporaryDirectory(prefix="articleflow-mmdc-") as tmp:
            input_path = Path(tmp) / "diagram.mmd"
            output_path = Path(tmp) / "diagram.svg"
            input_path.write_text(source_code, encoding="utf-8")

            process = await asyncio.create_subprocess_exec(
                binary, "-i", str(input_path), "-o", str(output_path), "-b", "white",
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
            try:
                _, stderr = await asyncio.wait_for(process.communicate(), timeout=self.timeout)
            except asyncio.TimeoutError:
                process.kill()
                await process.wait()
                return RenderResult.failure(
                    RenderErrorKind.TIMEOUT, f"mmdc exceeded {self.timeout}s", strategy=self.name
                )

            if process.returncode != 0 or not output_path.exists():
                message = stderr.decode("utf-8", errors="replace").strip()[:500]
                return RenderResult.failure(
                    RenderErrorKind.LOCAL_FAILED,
                    f"mmdc exited with {process.returncode}: {message}",
                    strategy=self.name,
                )

            return RenderResult.ok(output_path.read_bytes(), "image/svg+xml", self.name)


class DiagramRenderer:
    """
    Validate, then try each strategy in order until one succeeds.

    Usage:
        renderer = DiagramRenderer(MermaidValidator(), [MermaidInkStrategy(url)])
        result = await renderer.render("graph TD\\nA-->B")
        if result.success:
            upload(result.image_bytes, result.mime_type)
    """

    def __init__(
        self,
        validator: MermaidValidator,
        strategies: Sequence[RenderStrategy],
        timeout: float = RENDER_TIMEOUT_SECONDS,
    ):
        self.validator = validator
        self.strategies: List[RenderStrategy] = list(strategies)
        self.timeout = timeout

    async def render(self, source_code: str) -> RenderResult:
        """Render diagram source; returns a failure result instead of raising."""
        try:
            self.validator.validate(source_code).raise_for_errors()
        except DiagramValidationError as e:
            logger.warning(f"Diagram rejected by validation ({e.rule.value}): {e}")
            return RenderResult.failure(RenderErrorKind.VALIDATION, str(e), violated_rule=e.rule)

        if not self.strategies:
            return RenderResult.failure(RenderErrorKind.NO_STRATEGY, "No render strategies configured")

        last_failure: Optional[RenderResult] = None
        for strategy in self.strategies:
            result = await self._attempt(strategy, source_code)
            if result.success:
                logger.debug(f"Diagram rendered by {strategy.name} ({len(result.image_bytes)} bytes)")
                return result

            logger.warning(
                f"Render strategy {strategy.name} failed "
                f"({result.error_kind.value}): {result.error_message}"
            )
            last_failure = result

        return last_failure

    async def _attempt(self, strategy: RenderStrategy, source_code: str) -> RenderResult:
        try:
            result = await asyncio.wait_for(strategy.attempt(source_code), timeout=self.timeout)
        except asyncio.TimeoutError:
            return RenderResult.failure(
                RenderErrorKind.TIMEOUT,
                f"Render exceeded {self.timeout}s",
                strategy=strategy.name,
            )
        except RenderTransientError as e:
            return RenderResult.failure(RenderErrorKind.TRANSIENT, str(e), strategy=strategy.name)
        except RenderError as e:
            return RenderResult.failure(RenderErrorKind.STRATEGY_FAILED, str(e), strategy=strategy.name)
        except Exception as e:
            return RenderResult.failure(RenderErrorKind.TRANSIENT, str(e), strategy=strategy.name)

        if result.success and not result.image_bytes:
            return RenderResult.failure(
                RenderErrorKind.EMPTY_RESPONSE, "Strategy returned no bytes", strategy=strategy.name
            )
        return result


def build_renderer(settings, transport: Optional[httpx.AsyncBaseTransport] = None) -> DiagramRenderer:
    """Assemble the strategy chain described by settings."""
    strategies: List[RenderStrategy] = []
    if settings.render_primary == "kroki":
        strategies.append(KrokiStrategy(settings.kroki_url, transport=transport))
    else:
        strategies.append(MermaidInkStrategy(settings.mermaid_ink_url, transport=transport))

    if settings.local_render_enabled:
        strategies.append(LocalMermaidCliStrategy(settings.mmdc_path, settings.render_timeout_seconds))

    return DiagramRenderer(
        MermaidValidator(settings.forbidden_diagram_keywords),
        strategies,
        timeout=settings.render_timeout_seconds,
    )
