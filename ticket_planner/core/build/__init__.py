"""Ticket hierarchy builder.

Turns aggregated estimates into process -> [group] -> task ticket trees.
"""
