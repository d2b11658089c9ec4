# ============================================================
# GLLVM – DISEASES × SOCIO-ENVIRONMENTAL DRIVERS (AMAZON LEGAL)
# GLOBAL CONFIGURATION
#
# Everything the analyst may want to change lives here:
#   - input files and tokens
#   - disease labels
#   - covariate transforms (kind + epsilon, one per variable)
#   - model-selection grid and latent dimensions
#   - plotting aesthetics and network threshold
# ============================================================

import os

# ============================================================
# PATHS
# ============================================================

DATA_DIR = os.environ.get("AMAZON_GLLVM_DATA_DIR", os.path.join(".", "data"))
OUT_ROOT = os.environ.get("AMAZON_GLLVM_OUT_DIR", os.path.join(".", "output"))

DISEASE_FILE = "diseases_by_municipality.csv"
COVARIATE_FILE = "covariates_by_municipality.csv"
POPULATION_FILE = "population_by_municipality.csv"
ASSOCIATION_FILE = "association_matrix.csv"

FIGURES_SUBDIR = "FIGURES"
TABLES_SUBDIR = "TABLES"

CSV_SEP = ","
CSV_ENCODING = "utf-8"
MISSING_TOKEN = "-"

ID_COL = "CD_MUN"
STATE_COL = "UF"
POPULATION_COL = "POP"

# Export switches (tables off by default)
EXPORT_TABLES = False
EXPORT_FIGURES = True

# ============================================================
# RESPONSES
# ============================================================

# raw column -> readable label (order is the response column order)
DISEASE_LABELS = {
    "CHAGAS_RUR": "Chagas (rural)",
    "CHAGAS_URB": "Chagas (urban)",
    "MALARIA_RUR": "Malaria (rural)",
    "MALARIA_URB": "Malaria (urban)",
    "ATL_RUR": "ATL (rural)",
    "ATL_URB": "ATL (urban)",
    "VL_RUR": "VL (rural)",
    "VL_URB": "VL (urban)",
    "DENGUE": "Dengue",
}

# ============================================================
# COVARIATES
# ============================================================

# (kind, epsilon): "log" -> log(x + eps) ; "sqrt" -> sqrt(x + 3/8)
# epsilons are per variable and must not be collapsed to one default
COVARIATE_TRANSFORMS = {
    # deforestation / mining / fire
    "DEFOR_KM2": ("log", 1e-3),
    "DEFOR_RATE": ("log", 1e-4),
    "MINING_KM2": ("log", 1e-4),
    "FIRE_HOTSPOTS": ("log", 1e-1),
    "BURNED_KM2": ("log", 1e-2),
    # land cover
    "FOREST_PCT": ("log", 1e-3),
    "SECVEG_PCT": ("log", 1e-3),
    "AGRIC_PCT": ("log", 1e-4),
    "URBAN_PCT": ("log", 1e-5),
    "WATER_PCT": ("log", 1e-5),
    "PASTURE_PCT": ("sqrt", None),
    "EDGE_DENSITY": ("sqrt", None),
    # infrastructure proxies / distances
    "ROAD_DENSITY": ("log", 1e-4),
    "DIST_ROAD_KM": ("log", 1e-1),
    "DIST_RIVER_KM": ("log", 1e-1),
    "DIST_CITY_KM": ("log", 1e-1),
    "HEALTH_UNITS": ("log", 1e-2),
    "SANITATION_PCT": ("log", 1e-3),
    # climate anomalies (ratio to the reference period)
    "PRECIP_ANOM": ("log", 1e-6),
    "TEMP_ANOM": ("log", 1e-6),
    # poverty
    "POVERTY_PCT": ("log", 1e-3),
    "EXTREME_POVERTY_PCT": ("log", 1e-3),
    "MPI": ("log", 1e-6),
    "GINI": ("log", 1e-6),
}

SQRT_SHIFT = 3.0 / 8.0

# land-use transition class (categorical)
TTCLASS_COL = "TTCLASS"
TTCLASS_REFERENCE = "forest_stable"

SPEARMAN_THRESHOLD = 0.7

# covariates shown as colour overlays on the ordination
ORDINATION_OVERLAYS = ("DEFOR_KM2", "FIRE_HOTSPOTS", "PASTURE_PCT", "POVERTY_PCT")

# ============================================================
# INCIDENCE
# ============================================================

# case counts in the source tables are totals over a fixed 5-year window
OBSERVATION_YEARS = 5
PER_POPULATION = 1000

# ============================================================
# MODELS (R gllvm)
# ============================================================

FAMILY_POISSON = "poisson"
FAMILY_NB = "negative.binomial"
FAMILY_ZIP = "ZIP"

METHOD_VA = "VA"
METHOD_LA = "LA"

# latent dimensions used while choosing family / row effect
SELECTION_NUM_LV = 2

# name: (family, row effect, method, warm start from)
SELECTION_GRID = [
    ("pois_va", FAMILY_POISSON, False, METHOD_VA, None),
    ("pois_va_row", FAMILY_POISSON, True, METHOD_VA, None),
    ("nb_va", FAMILY_NB, False, METHOD_VA, None),
    ("nb_va_row", FAMILY_NB, True, METHOD_VA, None),
    ("nb_la", FAMILY_NB, False, METHOD_LA, None),
    ("nb_la_row", FAMILY_NB, True, METHOD_LA, None),
    ("zip_la", FAMILY_ZIP, False, METHOD_LA, "pois_va"),
    ("zip_la_row", FAMILY_ZIP, True, METHOD_LA, "pois_va_row"),
]

LV_GRID = (1, 2, 3)

R_SEED = 1234
R_N_INIT = 3

# AIC differences below this are treated as ties (fewest parameters wins)
AIC_TIE_TOL = 1e-6

Z_95 = 1.96

# ============================================================
# NETWORK
# ============================================================

NETWORK_EDGE_THRESHOLD = 0.1
NETWORK_LAYOUT_SEED = 42
NETWORK_DISEASE_COLOR = "#D55E00"
NETWORK_COVARIATE_COLOR = "#A6BDD7"
NETWORK_POSITIVE_COLOR = "#0072B2"
NETWORK_NEGATIVE_COLOR = "#CC3311"

# ============================================================
# PLOTTING
# ============================================================

FIG_DPI = 300
LINE_BLUE = "#0072B2"
SHADE_BLUEGRAY = "#A6BDD7"
SHADE_ALPHA = 0.55
MAX_PATH_SAFE = 220

STATE_COLORS = {
    "AC": "#E69F00",
    "AM": "#56B4E9",
    "AP": "#009E73",
    "MA": "#F0E442",
    "MT": "#0072B2",
    "PA": "#D55E00",
    "RO": "#CC79A7",
    "RR": "#999999",
    "TO": "#000000",
}
STATE_MARKERS = ["o", "s", "^", "D", "v", "P", "X", "<", ">"]

HEATMAP_CMAP = "RdBu_r"

RC_PARAMS = {
    "figure.dpi": FIG_DPI,
    "font.size": 9,
    "axes.titlesize": 9,
    "axes.labelsize": 9,
    "xtick.labelsize": 8,
    "ytick.labelsize": 8,
    "legend.fontsize": 8,
    "font.family": "DejaVu Sans",
}
