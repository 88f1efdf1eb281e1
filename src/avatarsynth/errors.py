"""
Pipeline error taxonomy.

Heuristic stages never raise for pathological images; they return
low-confidence defaults instead. Budget overruns are clamped, not raised.
"""

from __future__ import annotations


class AvatarSynthError(Exception):
    """Base class for errors raised by the synthesis pipeline."""


class InputError(AvatarSynthError):
    """Malformed, corrupt or zero-size input image."""


class ExternalServiceFailure(AvatarSynthError):
    """An external collaborator call failed; callers fall back locally."""


class InferenceUnavailable(ExternalServiceFailure):
    """Inference service is unconfigured, unreachable or saturated."""


class InferenceTimeout(ExternalServiceFailure):
    """Inference call exceeded its per-call timeout."""


class InferenceResponseError(ExternalServiceFailure):
    """Inference service answered with an error or an unusable body."""
