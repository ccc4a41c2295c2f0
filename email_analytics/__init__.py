"""
Email marketing analytics and guidance engine.

Turns parsed campaign, flow and subscriber exports into time-bucketed
aggregates, segmentation tables, gap/loss estimates, send-volume guidance,
flow-step scores and dollar-denominated opportunity summaries.
"""

__version__ = "1.0.0"
