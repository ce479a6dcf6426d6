"""
Core modules for the JACoB GPT dispatch layer.

This package contains model profiles and pricing, token budgeting, prompt
templates, and the parsing and schema helpers used on model replies.
"""
