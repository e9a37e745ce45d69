import os
import sys
from pathlib import Path

import pandas as pd

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

import gridreduce
from gridreduce.tools import copytree

EXAMPLES = Path(__file__).parent.parent.joinpath("examples")


def create_network(lines, zones, b=0.0):
    """Create nodes and lines tables from a list of (node_i, node_j, r, x, capacity)."""
    nodes = pd.DataFrame({"name": [f"n{i}" for i in range(1, len(zones) + 1)],
                          "zone": zones, "area": "", "gs": 0.0, "bs": 0.0,
                          "is_representative": False},
                         index=pd.RangeIndex(1, len(zones) + 1, name="bus"))
    lines = pd.DataFrame(lines, columns=["node_i", "node_j", "r", "x", "capacity"],
                         index=[f"l{i}" for i in range(1, len(lines) + 1)])
    lines["b"] = b
    return nodes, lines

def triangle_network():
    """3-bus triangle, branch (1, 3) has half the susceptance and capacity."""
    return create_network([(1, 2, 0.01, 0.1, 100), (2, 3, 0.01, 0.1, 100), (1, 3, 0.02, 0.2, 50)],
                          ["A", "A", "A"])

def two_zone_network():
    """4-bus network with zones A (1, 2) and B (3, 4), buses 1 and 3 have degree 3."""
    return create_network([(1, 2, 0.0, 0.1, 100), (1, 3, 0.0, 0.2, 80), (1, 4, 0.0, 0.1, 100),
                           (3, 2, 0.0, 0.1, 60), (3, 4, 0.0, 0.15, 100)],
                          ["A", "A", "B", "B"])
