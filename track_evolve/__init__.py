"""
Track-Evolve: Neuroevolution of Ray-Sensing Cars on a Tile Track

A population of small fixed-topology networks learns to drive a 2-D
tile track by selection and mutation alone. No gradients, no replay,
no reward model: just who got furthest, fastest.
"""

__version__ = "0.1.0"
