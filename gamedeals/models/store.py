# gamedeals/models/store.py

"""Storefront reference data exposed by the upstream deals API."""

from dataclasses import dataclass


@dataclass(frozen=True)
class Store:
    """A storefront, identified by its upstream numeric ID."""

    id: int
    name: str


# Upstream shop IDs; loaded once, never mutated
STORES: tuple[Store, ...] = (
    Store(2, "AllYouPlay"),
    Store(4, "Blizzard"),
    Store(6, "Fanatical"),
    Store(13, "DLGamer"),
    Store(15, "Dreamgame"),
    Store(16, "Epic Game Store"),
    Store(17, "FireFlower"),
    Store(20, "GameBillet"),
    Store(24, "GamersGate"),
    Store(25, "Gamesload"),
    Store(26, "GamesPlanet UK"),
    Store(27, "GamesPlanet DE"),
    Store(28, "GamesPlanet FR"),
    Store(29, "GamesPlanet US"),
    Store(35, "GOG"),
    Store(36, "GreenManGaming"),
    Store(37, "Humble Store"),
    Store(42, "IndieGala Store"),
    Store(47, "MacGameStore"),
    Store(48, "Microsoft Store"),
    Store(49, "Newegg"),
    Store(50, "Nuuvem"),
    Store(52, "EA Store"),
    Store(61, "Steam"),
    Store(62, "Ubisoft Store"),
    Store(64, "WinGameStore"),
    Store(65, "JoyBuggy"),
    Store(70, "Playsum"),
    Store(72, "ZOOM Platform"),
    Store(73, "PlanetPlay"),
    Store(74, "PlayerLand"),
)

_BY_ID: dict[int, Store] = {s.id: s for s in STORES}

# Shown as toggles in the TUI; the full registry is still accepted
FEATURED_STORE_IDS: tuple[int, ...] = (61, 35, 37, 16, 6, 36)


def store_by_id(store_id: int) -> Store | None:
    """Return the registered store for *store_id*, if any."""
    return _BY_ID.get(store_id)


def resolve_store(store_id: int, fallback_name: str = "") -> Store:
    """Resolve *store_id*, keeping the payload's name for unknown shops."""
    known = _BY_ID.get(store_id)
    if known is not None:
        return known
    return Store(store_id, fallback_name or f"Store {store_id}")
