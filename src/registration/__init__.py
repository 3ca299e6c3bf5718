"""Citizen registration flow: classify, extract, validate, transition."""
