"""Configuration for descriptor matching and loop closure detection.

Configs are plain dataclasses with defaults, optionally loaded from YAML:

    scan_budget: 50
    root:
      min_score: 0.8
      min_time_separation_s: 25.0
    leaf:
      min_score: 0.9
      min_time_separation_s: 25.0
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

import yaml


@dataclass(frozen=True)
class DescriptorMatchConfig:
    """Thresholds applied by a single descriptor search.

    Attributes:
        min_score: Candidates must score strictly above this to match
        min_time_separation_s: Minimum |dt| between query and candidate
    """

    min_score: float = 0.8
    min_time_separation_s: float = 25.0

    def __post_init__(self) -> None:
        if self.min_time_separation_s < 0.0:
            raise ValueError(
                f"min_time_separation_s must be non-negative, "
                f"got {self.min_time_separation_s}"
            )

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> DescriptorMatchConfig:
        """Create config from a parsed mapping, keeping defaults for missing keys.

        Raises:
            ValueError: If the mapping has unknown keys or invalid values
        """
        if data is None:
            return cls()
        if not isinstance(data, dict):
            raise ValueError(f"Match config must be a mapping, got {type(data).__name__}")

        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ValueError(f"Unknown match config keys: {sorted(unknown)}")

        kwargs: dict[str, float] = {}
        for key, value in data.items():
            try:
                kwargs[key] = float(value)
            except (TypeError, ValueError) as e:
                raise ValueError(f"Invalid value for {key}: {value!r}") from e

        return cls(**kwargs)


@dataclass(frozen=True)
class LcdDetectorConfig:
    """Parameters of the two-stage (root -> leaf) loop closure detector.

    Attributes:
        root: Thresholds for the coarse search over root descriptors
        leaf: Thresholds for the fine search over leaf descriptors
        scan_budget: Max candidates scored per search (None for unlimited)
    """

    root: DescriptorMatchConfig = field(default_factory=DescriptorMatchConfig)
    leaf: DescriptorMatchConfig = field(
        default_factory=lambda: DescriptorMatchConfig(min_score=0.9)
    )
    scan_budget: int | None = None

    def __post_init__(self) -> None:
        if self.scan_budget is not None and self.scan_budget < 0:
            raise ValueError(f"scan_budget must be non-negative, got {self.scan_budget}")

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> LcdDetectorConfig:
        """Create detector config from a parsed mapping.

        Raises:
            ValueError: If the mapping has unknown keys or invalid values
        """
        if data is None:
            return cls()
        if not isinstance(data, dict):
            raise ValueError(
                f"Detector config must be a mapping, got {type(data).__name__}"
            )

        unknown = set(data) - {"root", "leaf", "scan_budget"}
        if unknown:
            raise ValueError(f"Unknown detector config keys: {sorted(unknown)}")

        kwargs: dict[str, Any] = {}
        if "root" in data:
            kwargs["root"] = DescriptorMatchConfig.from_dict(data["root"])
        if "leaf" in data:
            kwargs["leaf"] = DescriptorMatchConfig.from_dict(data["leaf"])
        scan_budget = data.get("scan_budget")
        if scan_budget is not None:
            try:
                kwargs["scan_budget"] = int(scan_budget)
            except (TypeError, ValueError) as e:
                raise ValueError(f"Invalid value for scan_budget: {scan_budget!r}") from e

        return cls(**kwargs)

    @classmethod
    def from_yaml(cls, yaml_path: str | Path) -> LcdDetectorConfig:
        """Load detector config from a YAML file.

        Args:
            yaml_path: Path to the config file

        Returns:
            Parsed config (an empty file gives the defaults)

        Raises:
            FileNotFoundError: If the file doesn't exist
            ValueError: If the file contents are invalid
        """
        path = Path(yaml_path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {yaml_path}")

        with open(path, "r") as f:
            data = yaml.safe_load(f)

        try:
            return cls.from_dict(data)
        except (TypeError, ValueError) as e:
            raise ValueError(f"Invalid detector config in {yaml_path}: {e}") from e
