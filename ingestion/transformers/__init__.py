"""
Pure transformations of extracted data: normalization and subcategory inference.
"""
