"""
Combat module for the DPR engine.

Contains the probability and damage models, advantage resolution, power
attack and once-per-turn analysis, precast spells, the DPR orchestrator and
level progression. Import from the submodules directly, e.g.
`from dpr_engine.combat.dpr import DPROrchestrator`.
"""
