"""GRIDREDUCE, reduction of transmission networks to zonal equivalents."""

__version__ = "0.1.0"

from gridreduce.network_reduction import NetworkReduction
import gridreduce.tools as tools
import gridreduce.grid as grid
import gridreduce.data as data
import gridreduce.optimization as optimization
