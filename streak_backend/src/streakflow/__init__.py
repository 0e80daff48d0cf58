"""
StreakFlow backend package.

The FastAPI application lives in `streakflow.main`; the streak engine
(materializer, evaluator, policy, sync) can be used without it.
"""

__version__ = "0.1.0"
