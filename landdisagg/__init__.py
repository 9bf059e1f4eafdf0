"""landdisagg — cluster-to-grid-cell disaggregation of land-use model outputs.

Turns cluster-level land pools from a land-use optimization model into
grid-cell fields: proportional share splits of aggregate categories,
classification crosswalks, and category-weighted indicators (BII).
"""

__version__ = "0.1.0"
