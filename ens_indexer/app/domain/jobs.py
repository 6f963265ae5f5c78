from __future__ import annotations

# Job names consumed by external workers
OWNERSHIP_CHANGED = "ownership-changed"
NAME_RESYNC = "name-resync"
CLUB_FLOOR_PRICE_UPDATE = "club-floor-price-update"
