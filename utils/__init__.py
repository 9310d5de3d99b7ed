"""Library Loan Service - helper package

- validators.py: boundary validation for names and ages
- ui_helpers.py: CLI output rendering (plain, json, rich)
"""
