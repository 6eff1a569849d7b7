"""Built-in features."""

from __future__ import annotations

from typing import TYPE_CHECKING

from talfred.features.feature_toggles import FeatureToggles
from talfred.features.selection_highlighter import SelectionHighlighter

if TYPE_CHECKING:
    from talfred.api import Feature, Runtime

BUILTIN_FEATURES: tuple[type[Feature], ...] = (SelectionHighlighter, FeatureToggles)


def register_builtin_features(runtime: Runtime) -> list[Feature]:
    """Register every built-in feature on *runtime*."""
    registered = []
    for feature_cls in BUILTIN_FEATURES:
        feature = runtime.register_feature(feature_cls)
        if feature is not None:
            registered.append(feature)
    return registered
