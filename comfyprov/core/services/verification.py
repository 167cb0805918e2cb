"""
Verification probe — decide whether a provisioned environment is usable.

Checks run in a fixed order and every check runs regardless of earlier
failures, so one report shows everything that is wrong:

    1. runtime       torch importable, version reported
    2. accelerator   CUDA device visible, name and memory reported
    3. version:*     each pinned package at its pinned version (warning only)
    4. import:*      extra modules the application needs at startup
    5. smoke-test    a small matrix multiply on the device

Only version mismatches are non-fatal.
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from comfyprov.core.models.action import Receipt
from comfyprov.core.models.step import Step, StepPolicy
from comfyprov.core.models.verification import (
    CheckOutcome,
    VerificationExpectations,
    VerificationResult,
)
from comfyprov.core.services.runtime_probe import RuntimeProbe

logger = logging.getLogger(__name__)

DEFAULT_MATRIX_SIZE = 1000


def _guarded(name: str, check: Callable[[], CheckOutcome]) -> CheckOutcome:
    """Run a check; an exception becomes a failed outcome."""
    try:
        return check()
    except Exception as e:
        logger.debug("Check %s raised", name, exc_info=True)
        return CheckOutcome(name=name, status="failed", message=f"{type(e).__name__}: {e}")


def _check_runtime(probe: RuntimeProbe, expected: bool) -> CheckOutcome:
    if not expected:
        return CheckOutcome(name="runtime", status="skipped", message="not expected")
    info = probe.runtime_info()
    if not info.get("ok"):
        return CheckOutcome(
            name="runtime",
            status="failed",
            message=f"PyTorch not importable: {info.get('error', 'unknown error')}",
        )
    return CheckOutcome(
        name="runtime",
        message=f"PyTorch {info.get('version')} (CUDA {info.get('cuda_version')})",
        details={"version": info.get("version"), "cuda_version": info.get("cuda_version")},
    )


def _check_accelerator(probe: RuntimeProbe, required: bool, device_index: int) -> CheckOutcome:
    info = probe.accelerator_info(device_index)
    if info.get("ok") and info.get("available"):
        return CheckOutcome(
            name="accelerator",
            message=f"GPU: {info.get('name')} ({info.get('memory_gb')} GB)",
            details={
                "name": info.get("name"),
                "memory_gb": info.get("memory_gb"),
                "device_count": info.get("device_count"),
            },
        )

    reason = info.get("error") if not info.get("ok") else "no CUDA device visible"
    return CheckOutcome(
        name="accelerator",
        status="failed" if required else "skipped",
        message=f"Accelerator unavailable: {reason}",
    )


def _check_version(probe: RuntimeProbe, package: str, pinned: str) -> CheckOutcome:
    name = f"version:{package}"
    info = probe.package_version(package)
    found = info.get("version") if info.get("ok") else None
    if found == pinned:
        return CheckOutcome(name=name, message=f"{package}=={found}", details={"version": found})
    what = f"found {found}" if found else "not installed"
    return CheckOutcome(
        name=name,
        status="warning",
        message=f"{package} version mismatch: expected {pinned}, {what}",
        details={"expected": pinned, "found": found},
    )


def _check_import(probe: RuntimeProbe, module: str) -> CheckOutcome:
    name = f"import:{module}"
    info = probe.import_module(module)
    if info.get("ok"):
        return CheckOutcome(name=name, message=f"{module} loaded")
    return CheckOutcome(
        name=name,
        status="failed",
        message=f"{module} failed to import: {info.get('error', 'unknown error')}",
    )


def matmul_smoke_test(
    probe: RuntimeProbe,
    device: str = "cuda:0",
    size: int = DEFAULT_MATRIX_SIZE,
) -> Callable[[], CheckOutcome]:
    """The default smoke test: ``size``×``size`` matmul on ``device``."""

    def check() -> CheckOutcome:
        info = probe.matmul(size, device)
        if info.get("ok"):
            return CheckOutcome(
                name="smoke-test",
                message=f"{size}x{size} matmul on {device} passed",
                details={"device": device, "size": size},
            )
        return CheckOutcome(
            name="smoke-test",
            status="failed",
            message=f"Computation on {device} failed: {info.get('error', 'unknown error')}",
        )

    return check


def verify(
    expectations: VerificationExpectations,
    probe: RuntimeProbe,
    device_index: int = 0,
    matrix_size: int = DEFAULT_MATRIX_SIZE,
) -> VerificationResult:
    """Run every check and collect the outcomes in order."""
    details: list[CheckOutcome] = [
        _guarded("runtime", lambda: _check_runtime(probe, expectations.runtime_available)),
    ]

    accelerator = _guarded(
        "accelerator",
        lambda: _check_accelerator(probe, expectations.accelerator_required, device_index),
    )
    details.append(accelerator)

    for package, pinned in expectations.package_versions.pins.items():
        details.append(
            _guarded(f"version:{package}", lambda p=package, v=pinned: _check_version(probe, p, v))
        )

    for module in expectations.imports:
        details.append(_guarded(f"import:{module}", lambda m=module: _check_import(probe, m)))

    smoke = expectations.smoke_test
    if smoke is None:
        use_gpu = expectations.accelerator_required or accelerator.passed
        device = f"cuda:{device_index}" if use_gpu else "cpu"
        smoke = matmul_smoke_test(probe, device=device, size=matrix_size)
    details.append(_guarded("smoke-test", smoke))

    for outcome in details:
        if outcome.failed:
            logger.error("❌ %s: %s", outcome.name, outcome.message)
        elif outcome.status == "warning":
            logger.warning("⚠️  %s", outcome.message)
        else:
            logger.info("✅ %s: %s", outcome.name, outcome.message)

    return VerificationResult(
        passed=not any(o.failed for o in details),
        details=details,
    )


def verification_step(
    expectations: VerificationExpectations,
    probe: RuntimeProbe,
    device_index: int = 0,
    matrix_size: int = DEFAULT_MATRIX_SIZE,
    name: str = "verify-environment",
) -> Step:
    """A fatal pipeline step wrapping :func:`verify`."""

    def action() -> Receipt:
        result = verify(expectations, probe, device_index=device_index, matrix_size=matrix_size)
        metadata = {"checks": [o.model_dump(mode="json") for o in result.details]}
        if result.passed:
            summary = "; ".join(o.message for o in result.details if o.passed)
            return Receipt.success(
                adapter="verify", action_id=name, output=summary, metadata=metadata
            )
        failures = "; ".join(f"{o.name}: {o.message}" for o in result.failures)
        return Receipt.failure(
            adapter="verify",
            action_id=name,
            error=f"Verification failed ({failures})",
            metadata=metadata,
        )

    return Step(
        name=name,
        action=action,
        policy=StepPolicy.FATAL,
        description="Verify the installed runtime",
    )
