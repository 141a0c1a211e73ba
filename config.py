# config.py
import os

# ======= Local search =======
# Consecutive descent steps allowed from one shuffle before reshuffling.
RESTART_DEPTH = int(os.getenv("PT_RESTART_DEPTH", "5"))
MAX_STEPS     = int(os.getenv("PT_MAX_STEPS", "5000"))
# Wall-clock timebox per row (seconds); 0 disables it.
MAX_SECONDS   = float(os.getenv("PT_MAX_SECONDS", "30"))

# ======= Seeding =======
_SEED_RAW = os.getenv("PT_SEED", "").strip()
SEED = int(_SEED_RAW) if _SEED_RAW else None

# ======= Constraint windows =======
# half_up matches the spreadsheet host (Math.round); half_even is Python's round().
WINDOW_ROUNDING = os.getenv("PT_WINDOW_ROUNDING", "half_up").strip().lower()

# ======= Template table layout =======
# Column at which the generated codes are spliced into a marked row.
TEMPLATE_OFFSET = int(os.getenv("PT_TEMPLATE_OFFSET", "1"))

# ======= Output names =======
TEMPLATES_OUT = os.getenv("PT_TEMPLATES_OUT", "templates.csv")

class CFG:
    RESTART_DEPTH = RESTART_DEPTH
    MAX_STEPS     = MAX_STEPS
    MAX_SECONDS   = MAX_SECONDS

    SEED = SEED

    WINDOW_ROUNDING = WINDOW_ROUNDING

    TEMPLATE_OFFSET = TEMPLATE_OFFSET

    TEMPLATES_OUT = TEMPLATES_OUT

__all__ = ["CFG"]
