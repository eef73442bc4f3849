"""
playersync: keeps an internal NFL player catalog in step with ESPN.

- services.sync.matchers: resolve ESPN players to catalog entries
- services.sync.stats_transformer: map box-score stats onto categories
- services.sync.orchestrator: run roster, weekly, historical and full syncs
"""
__version__ = "1.0.0"
