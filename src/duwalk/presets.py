"""Well-known locations that tend to grow large."""

import os
from pathlib import Path

from pydantic import BaseModel, Field


class PresetLocation(BaseModel):
    """A named path worth sizing in the preset report."""

    label: str = Field(..., description="Human-readable name")
    path: str = Field(..., description="Path, supports ~ expansion")


def expand_path(path: str) -> Path:
    """Expand ~ and environment variables in path."""
    return Path(os.path.expanduser(os.path.expandvars(path)))


PRESET_LOCATIONS: list[PresetLocation] = [
    # User content
    PresetLocation(label="Downloads", path="~/Downloads"),
    PresetLocation(label="Movies", path="~/Movies"),
    PresetLocation(label="Videos", path="~/Videos"),
    PresetLocation(label="Pictures", path="~/Pictures"),
    PresetLocation(label="Music", path="~/Music"),
    # Caches
    PresetLocation(label="User Caches", path="~/Library/Caches"),
    PresetLocation(label="User Caches (XDG)", path="~/.cache"),
    PresetLocation(label="System Caches", path="/Library/Caches"),
    PresetLocation(label="Trash", path="~/.local/share/Trash"),
    # Xcode / mobile
    PresetLocation(label="Xcode DerivedData", path="~/Library/Developer/Xcode/DerivedData"),
    PresetLocation(label="Xcode Archives", path="~/Library/Developer/Xcode/Archives"),
    PresetLocation(label="iOS Simulators", path="~/Library/Developer/CoreSimulator/Devices"),
    PresetLocation(label="Android SDK", path="~/Library/Android/sdk"),
    PresetLocation(label="Android SDK (Linux)", path="~/Android/Sdk"),
    PresetLocation(label="Android User Dir", path="~/.android"),
    # Package managers
    PresetLocation(label="Gradle cache", path="~/.gradle"),
    PresetLocation(label="Maven repository", path="~/.m2/repository"),
    PresetLocation(label="npm cache", path="~/.npm"),
    PresetLocation(label="npm cache (Library)", path="~/Library/Caches/npm"),
    PresetLocation(label="Yarn cache", path="~/Library/Caches/Yarn"),
    PresetLocation(label="pnpm store (Library)", path="~/Library/pnpm/store"),
    PresetLocation(label="pnpm store (home)", path="~/.pnpm-store"),
    PresetLocation(label="Cargo registry", path="~/.cargo/registry"),
    PresetLocation(label="Homebrew (user)", path="~/Library/Caches/Homebrew"),
    PresetLocation(label="Homebrew (system)", path="/Library/Caches/Homebrew"),
    # Containers
    PresetLocation(
        label="Docker.raw",
        path="~/Library/Containers/com.docker.docker/Data/vms/0/data/Docker.raw",
    ),
    PresetLocation(label="Docker config", path="~/.docker"),
    # Media tools
    PresetLocation(
        label="Adobe Media Cache Files",
        path="~/Library/Application Support/Adobe/Common/Media Cache Files",
    ),
    PresetLocation(
        label="Adobe Media Cache",
        path="~/Library/Application Support/Adobe/Common/Media Cache",
    ),
    PresetLocation(label="Adobe Caches", path="~/Library/Caches/Adobe"),
    PresetLocation(label="DaVinci CacheClip", path="~/Movies/DaVinci Resolve/CacheClip"),
    PresetLocation(label="DaVinci ProxyMedia", path="~/Movies/DaVinci Resolve/ProxyMedia"),
]


def get_existing_presets() -> list[PresetLocation]:
    """Preset locations present on this machine, with paths expanded."""
    found = []
    for location in PRESET_LOCATIONS:
        expanded = expand_path(location.path)
        if os.path.lexists(expanded):
            found.append(PresetLocation(label=location.label, path=str(expanded)))
    return found
