"""
chem-srp: self-paced retrieval practice for first-year chemistry.

Students work through a week's topics (nomenclature, units) until every
item has been answered correctly the required number of times. The full
trial log is uploaded once at the end of the session.
"""

__version__ = "1.0.0"
