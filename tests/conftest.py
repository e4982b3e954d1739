"""Test-runner configuration for Hypothesis."""

from hypothesis import HealthCheck, settings

# The first run on a fresh checkout builds Hypothesis' unicode cache, which can
# trip the input-generation timing health check; it is not a test failure.
settings.register_profile("default_ci", suppress_health_check=[HealthCheck.too_slow])
settings.load_profile("default_ci")
