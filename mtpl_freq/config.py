"""
Configuration file for project paths and constants.

This module centralizes all file paths and constants used across the project,
ensuring consistency between scripts, tests and the model builders.
"""

from pathlib import Path

# ============================================================================
# Project Structure
# ============================================================================

# Project root directory (parent of mtpl_freq/)
PROJECT_ROOT = Path(__file__).resolve().parent.parent

# ============================================================================
# Data Directories
# ============================================================================

DATA_DIR = PROJECT_ROOT / "data"
DATA_RAW = DATA_DIR / "raw"
DATA_PROCESSED = DATA_DIR / "processed"

# ============================================================================
# Output Directories
# ============================================================================

OUTPUTS_DIR = PROJECT_ROOT / "outputs"
FIGURES_DIR = OUTPUTS_DIR / "figures"
MODELS_DIR = PROJECT_ROOT / "models"

# ============================================================================
# Data Constants
# ============================================================================

# freMTPL2freq on OpenML
OPENML_FREQ_DATA_ID = 41214

RAW_POLICIES_FILE = "freMTPL2freq.csv"
PROCESSED_POLICIES_FILE = "freMTPL2freq_cleaned.csv"

# Upper caps applied during cleaning (French MTPL case study conventions)
CLAIMNB_CAP = 4
EXPOSURE_CAP = 1.0
VEHAGE_CAP = 20
DRIVAGE_CAP = 90
BONUSMALUS_CAP = 150

DEFAULT_TEST_SIZE = 0.1
DEFAULT_RANDOM_STATE = 42

# ============================================================================
# Model Constants
# ============================================================================

#
# NOTE: every model in one run shares the same optimizer, learning rate,
# number of epochs and batch size. Only the architecture varies.
#

# --- Poisson GLM (scikit-learn) defaults ---
DEFAULT_GLM_ALPHA = 0.0
DEFAULT_GLM_MAX_ITER = 1000

# --- Network training defaults ---
DEFAULT_NN_OPTIMIZER = "nadam"
DEFAULT_NN_LEARNING_RATE = 0.002
DEFAULT_NN_EPOCHS = 100
DEFAULT_NN_BATCH_SIZE = 10_000
DEFAULT_NN_VALIDATION_FRACTION = 0.1
DEFAULT_NN_SEED = 100
DEFAULT_DEVICE = "cpu"

# --- Architectures: hidden-layer widths by depth ---
DEFAULT_HIDDEN_UNITS = {
    0: (),
    1: (20,),
    2: (20, 15),
    3: (20, 15, 10),
    4: (20, 15, 10, 5),
}
DEFAULT_DROPOUT_RATE = 0.05

# ============================================================================
# Utility Functions
# ============================================================================

def ensure_directories():
    """
    Create all necessary directories if they don't exist.

    This is useful to call at the start of scripts to ensure
    all output directories are available.
    """
    directories = [
        DATA_DIR,
        DATA_RAW,
        DATA_PROCESSED,
        OUTPUTS_DIR,
        FIGURES_DIR,
        MODELS_DIR,
    ]

    for directory in directories:
        directory.mkdir(parents=True, exist_ok=True)

    return directories
