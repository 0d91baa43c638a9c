# =============================================================================
# Reflection Package — Output Quality Gates
# =============================================================================
#   - rubrics.py: Named, weighted scoring policies with pass thresholds
#   - critique.py: Model-backed critic that scores an output against a rubric
#   - reflect_loop.py: generate → critique → regenerate convergence loop
#   - confidence.py: Four-factor trust score for individual data points
# =============================================================================
