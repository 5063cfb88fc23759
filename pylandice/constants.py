# pylandice/constants.py

"""
Central repository for the physical constants used by the land-ice core.
"""

# --- Time ---
SECONDS_PER_DAY = 86400.0
DAYS_IN_YEAR = 365.0  # no-leap calendar
SECONDS_IN_YEAR = DAYS_IN_YEAR * SECONDS_PER_DAY

# --- Physical Constants (SI units) ---
GRAVITY = 9.81  # m s^-2
RHO_ICE = 910.0  # ice density (kg m^-3)
RHO_OCEAN = 1028.0  # sea water density (kg m^-3)
SEA_LEVEL = 0.0  # m

# --- Glen flow law (shallow-ice velocity) ---
GLEN_N = 3.0
FLOW_PARAM_A = 1.0e-16 / SECONDS_IN_YEAR  # Pa^-n s^-1, temperate-ish ice

# --- Cell mask bits (stored in State.cell_mask) ---
MASK_ICE = 1
MASK_FLOATING = 2
