"""Pod annotation vocabulary and the typed injection state record.

The annotation map is only touched at the boundary: ``InjectionState`` is
loaded from it when a request is created and written back by ``apply_to``
when the pipeline finalizes. Everything in between reads and writes the
typed fields.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from dtinject.crd import parse_bool


# OneAgent (code module) injection
ANNOTATION_ONEAGENT_INJECT = "oneagent.dynatrace.com/inject"
ANNOTATION_ONEAGENT_INJECTED = "oneagent.dynatrace.com/injected"
ANNOTATION_ONEAGENT_REASON = "oneagent.dynatrace.com/reason"
ANNOTATION_INSTALL_PATH = "oneagent.dynatrace.com/install-path"
ANNOTATION_VOLUME_TYPE = "oneagent.dynatrace.com/volume-type"
ANNOTATION_TECHNOLOGIES = "oneagent.dynatrace.com/technologies"
ANNOTATION_FLAVOR = "oneagent.dynatrace.com/flavor"

# Metadata enrichment
ANNOTATION_METADATA_INJECT = "metadata-enrichment.dynatrace.com/inject"
ANNOTATION_METADATA_INJECTED = "metadata-enrichment.dynatrace.com/injected"
METADATA_PREFIX = "metadata.dynatrace.com/"
ANNOTATION_WORKLOAD_KIND = METADATA_PREFIX + "dt.kubernetes.workload.kind"
ANNOTATION_WORKLOAD_NAME = METADATA_PREFIX + "dt.kubernetes.workload.name"

# Overall pipeline outcome
ANNOTATION_DYNATRACE_INJECTED = "dynatrace.com/injected"
ANNOTATION_DYNATRACE_REASON = "dynatrace.com/reason"

DEFAULT_INSTALL_PATH = "/opt/dynatrace/oneagent-paas"


class VolumeType(str, Enum):
    """How the code module binaries reach the install container."""

    CSI = "csi"
    EPHEMERAL = "ephemeral"


class InjectionReason(str, Enum):
    """Machine readable reason stored when the agent was not injected."""

    NO_BOOTSTRAP_CONFIG = "no-bootstrap-config"
    NO_MUTATION_NEEDED = "no-mutation-needed"
    NO_CODE_MODULES_IMAGE = "no-code-modules-image"


@dataclass(frozen=True)
class WorkloadInfo:
    """Owning controller of a pod."""

    kind: str
    name: str


_BOOL_WORDS = frozenset({"true", "false", "1", "0", "t", "f"})


def _bool_or_none(value: str | None) -> bool | None:
    if value is None or value.strip().lower() not in _BOOL_WORDS:
        return None
    return parse_bool(value, default=False)


def _volume_type_or_none(value: str | None) -> VolumeType | None:
    try:
        return VolumeType(value) if value is not None else None
    except ValueError:
        return None


def _reason_or_none(value: str | None) -> InjectionReason | None:
    try:
        return InjectionReason(value) if value is not None else None
    except ValueError:
        return None


@dataclass
class InjectionState:
    """Typed view of the injection annotations of one pod.

    Override fields are read-only inputs set by the pod owner. Outcome fields
    are written by the pipeline and serialized by ``apply_to``.
    """

    # Per-pod overrides
    pod_metadata: dict[str, str] = field(default_factory=dict)
    inject: bool | None = None
    metadata_inject: bool | None = None
    install_path_override: str | None = None
    volume_type_override: VolumeType | None = None
    technologies: str | None = None
    flavor: str | None = None

    # Outcomes
    oneagent_injected: bool | None = None
    reason: InjectionReason | None = None
    metadata_injected: bool | None = None
    workload: WorkloadInfo | None = None
    copied_metadata: dict[str, str] = field(default_factory=dict)
    dynatrace_injected: bool = False

    @classmethod
    def from_annotations(cls, annotations: dict[str, str] | None) -> InjectionState:
        """Parse the state from a pod annotation map."""
        annotations = annotations or {}

        workload = None
        kind = annotations.get(ANNOTATION_WORKLOAD_KIND)
        name = annotations.get(ANNOTATION_WORKLOAD_NAME)
        if kind is not None and name is not None:
            workload = WorkloadInfo(kind=kind, name=name)

        pod_metadata = {
            key: value
            for key, value in annotations.items()
            if key.startswith(METADATA_PREFIX)
            and key not in (ANNOTATION_WORKLOAD_KIND, ANNOTATION_WORKLOAD_NAME)
        }

        return cls(
            pod_metadata=pod_metadata,
            inject=_bool_or_none(annotations.get(ANNOTATION_ONEAGENT_INJECT)),
            metadata_inject=_bool_or_none(annotations.get(ANNOTATION_METADATA_INJECT)),
            install_path_override=annotations.get(ANNOTATION_INSTALL_PATH) or None,
            volume_type_override=_volume_type_or_none(annotations.get(ANNOTATION_VOLUME_TYPE)),
            technologies=annotations.get(ANNOTATION_TECHNOLOGIES),
            flavor=annotations.get(ANNOTATION_FLAVOR),
            oneagent_injected=_bool_or_none(annotations.get(ANNOTATION_ONEAGENT_INJECTED)),
            reason=_reason_or_none(annotations.get(ANNOTATION_ONEAGENT_REASON)),
            metadata_injected=_bool_or_none(annotations.get(ANNOTATION_METADATA_INJECTED)),
            workload=workload,
            dynatrace_injected=parse_bool(
                annotations.get(ANNOTATION_DYNATRACE_INJECTED), default=False
            ),
        )

    @property
    def install_path(self) -> str:
        return self.install_path_override or DEFAULT_INSTALL_PATH

    def is_oneagent_injected(self) -> bool:
        return bool(self.oneagent_injected)

    def mark_injected(self) -> None:
        self.oneagent_injected = True
        self.reason = None

    def mark_not_injected(self, reason: InjectionReason) -> None:
        self.oneagent_injected = False
        self.reason = reason

    def mark_metadata_injected(self, workload: WorkloadInfo) -> None:
        self.metadata_injected = True
        self.workload = workload

    def mark_dynatrace_injected(self) -> None:
        self.dynatrace_injected = True

    def apply_to(self, annotations: dict[str, str] | None) -> dict[str, str]:
        """Write the outcome fields into an annotation map.

        Returns the updated map; a new one is created when ``annotations``
        is None. Keys of unset outcomes are left untouched.
        """
        annotations = annotations if annotations is not None else {}

        for key, value in self.copied_metadata.items():
            annotations.setdefault(key, value)

        if self.oneagent_injected is not None:
            annotations[ANNOTATION_ONEAGENT_INJECTED] = str(self.oneagent_injected).lower()
            if self.oneagent_injected or self.reason is None:
                annotations.pop(ANNOTATION_ONEAGENT_REASON, None)
            else:
                annotations[ANNOTATION_ONEAGENT_REASON] = self.reason.value

        if self.metadata_injected is not None:
            annotations[ANNOTATION_METADATA_INJECTED] = str(self.metadata_injected).lower()

        if self.workload is not None:
            annotations[ANNOTATION_WORKLOAD_KIND] = self.workload.kind
            annotations[ANNOTATION_WORKLOAD_NAME] = self.workload.name

        if self.dynatrace_injected:
            annotations[ANNOTATION_DYNATRACE_INJECTED] = "true"
            annotations.pop(ANNOTATION_DYNATRACE_REASON, None)

        return annotations


__all__ = [
    "ANNOTATION_DYNATRACE_INJECTED",
    "ANNOTATION_DYNATRACE_REASON",
    "ANNOTATION_FLAVOR",
    "ANNOTATION_INSTALL_PATH",
    "ANNOTATION_METADATA_INJECT",
    "ANNOTATION_METADATA_INJECTED",
    "ANNOTATION_ONEAGENT_INJECT",
    "ANNOTATION_ONEAGENT_INJECTED",
    "ANNOTATION_ONEAGENT_REASON",
    "ANNOTATION_TECHNOLOGIES",
    "ANNOTATION_VOLUME_TYPE",
    "ANNOTATION_WORKLOAD_KIND",
    "ANNOTATION_WORKLOAD_NAME",
    "DEFAULT_INSTALL_PATH",
    "METADATA_PREFIX",
    "InjectionReason",
    "InjectionState",
    "VolumeType",
    "WorkloadInfo",
]
