"""Network analysis module.

Provides the per-unit system, Y-bus construction with single-branch
removal, ZIP load models, Gauss-Seidel power flow, result assembly,
grid code compliance and N-1 contingency analysis.
"""
