from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Palette:
    name: str
    colors: tuple[str, ...]

    def color_for(self, index: int) -> str:
        return self.colors[index % len(self.colors)]


PALETTES: dict[str, Palette] = {
    "indigo": Palette("indigo", ("#6366f1", "#a855f7", "#ec4899", "#f97316", "#10b981")),
    "ocean": Palette("ocean", ("#0ea5e9", "#0284c7", "#14b8a6", "#6366f1", "#22d3ee", "#1e3a8a")),
    "sunset": Palette("sunset", ("#f97316", "#ef4444", "#f59e0b", "#ec4899", "#a855f7")),
    "forest": Palette("forest", ("#10b981", "#059669", "#84cc16", "#65a30d", "#0d9488")),
    "mono": Palette("mono", ("#0f172a", "#334155", "#64748b", "#94a3b8", "#cbd5e1")),
}

DEFAULT_PALETTE = PALETTES["indigo"]


def get_palette(name: str | None) -> Palette:
    if not name:
        return DEFAULT_PALETTE
    return PALETTES.get(name.lower(), DEFAULT_PALETTE)
