"""
DPR engine package.

Expected damage-per-round calculations for D&D 5e builds: dice and hit
probability models, advantage resolution, damage aggregation, power attack
and once-per-turn analysis, tactical policies, resource tracking and the
orchestrator tying them together.
"""
