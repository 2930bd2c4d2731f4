# engine/__init__.py

# The tax orchestrator and the ensemble runner are the public entry points.
from .tax_engine import calculate_taxes

from .simulator import RetirementSimulator

from .analysis import claiming_age_sensitivity, ltc_impact_comparison
