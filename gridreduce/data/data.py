import logging
from pathlib import Path

import numpy as np
import pandas as pd

import gridreduce.data.input_processing as input_processing
from gridreduce.data.worker import DataWorker
from gridreduce.exceptions import InvalidTopologyError

LINE_COLUMNS = ["node_i", "node_j", "r", "x", "b", "capacity"]
NODE_COLUMNS = ["zone", "gs", "bs"]


class DataManagement():
    """The DataManagement class provides processed data to all other modules in GRIDREDUCE

    This is done by managing the data read-in, processing and validation of
    input data.

    Parameters
    ----------
    options : dict
        The options from GRIDREDUCE main method persist in the DataManagement.
    wdir : pathlib.Path
       Working directory, proliferating from GRIDREDUCE main module.

    Attributes
    ----------
    wdir : pathlib.Path
        Working directory
    options : dict
        The options from GRIDREDUCE main method persist in the DataManagement.
    raw_data : dict(str, pandas.DataFrame)
        The raw data tables nodes, lines, tielines and generators as read from file.
    missing_data : list
        Raw data tables that were not found in the input data.
    nodes : pandas.DataFrame
        Processed nodes, indexed by bus id 1..N.
    lines : pandas.DataFrame
        Processed lines and tie-lines, indexed by line code.
    data_source : str
        Filepath of the loaded data.
    """

    def __init__(self, options, wdir):
        self.logger = logging.getLogger('log.gridreduce.data.DataManagement')
        self.logger.info("Initializing DataObject")

        self.wdir = Path(wdir)
        self.options = options
        self.raw_data = {}
        self.missing_data = []
        self.data_source = None

        self.nodes = pd.DataFrame()
        self.lines = pd.DataFrame()

    @property
    def generators(self):
        """Raw generator data, informational only."""
        return self.raw_data.get("generators", pd.DataFrame())

    def load_data(self, filepath):
        """Load Data from dataset at filepath.

        Currently .xlsx files and folders of .csv files work. After the raw data is
        read it is processed in the process_input method of this module.

        Parameters
        ----------
         filepath: pathlib.Path
            Filepath to the .xlsx file or folder, absolute or relative to the working
            directory or its data_input folder.
        """
        self.raw_data, self.missing_data = {}, []
        if Path(filepath).is_absolute() and Path(filepath).exists():
            DataWorker(self, Path(filepath))
        elif self.wdir.joinpath(filepath).exists():
            DataWorker(self, self.wdir.joinpath(filepath))
        elif self.wdir.joinpath("data_input").joinpath(filepath).exists():
            DataWorker(self, self.wdir.joinpath("data_input").joinpath(filepath))
        else:
            self.logger.error("Data File not found!")
            raise FileNotFoundError(f"Data File {filepath} not found!")

        if len(self.missing_data) > 0:
            self.logger.warning("Not complete list of expected input data found: %s",
                                ", ".join(self.missing_data))

        self.process_input()
        self.data_source = str(filepath)

    def process_input(self):
        """Process the raw data into the nodes and lines tables.

        Lines and tie-lines are cleaned, buses are numbered and all parameters are
        converted to per-unit, see :mod:`~gridreduce.data.input_processing`.
        """
        options = self.options["data"]
        lines = input_processing.clean_line_data(self.raw_data["lines"])
        if "tielines" in self.raw_data and not self.raw_data["tielines"].empty:
            tielines = input_processing.process_tielines(self.raw_data["tielines"])
        else:
            tielines = pd.DataFrame()

        self.nodes, self.lines = input_processing.number_buses(
            self.raw_data["nodes"], lines, tielines, base_mva=options["base_mva"],
            in_pu=options["in_pu"], bus_names_as_int=options["bus_names_as_int"])
        self.validate_topology()

    def set_network(self, nodes, lines):
        """Set processed nodes and lines directly, e.g. for a network built in code.

        Missing optional columns are added with default values, missing zone and
        area labels are set to an empty string.
        """
        nodes, lines = nodes.copy(), lines.copy()
        defaults = {"name": nodes.index.astype(str), "area": "", "pd": 0.0, "qd": 0.0,
                    "gs": 0.0, "bs": 0.0, "vm": 1.0, "va": 0.0, "base_kv": 0.0,
                    "bus_type": 1, "is_representative": False}
        for col, value in defaults.items():
            if col not in nodes.columns:
                nodes[col] = value
        for col in [col for col in ["zone", "area"] if col in nodes.columns]:
            nodes[col] = nodes[col].fillna("")
        if "from_name" not in lines.columns:
            lines["from_name"] = lines.node_i.map(nodes.name)
            lines["to_name"] = lines.node_j.map(nodes.name)
        if "is_tieline" not in lines.columns:
            lines["is_tieline"] = False
        if "capacity_mw" not in lines.columns and "capacity" in lines.columns:
            lines["capacity_mw"] = lines.capacity*self.options["data"]["base_mva"]

        self.nodes, self.lines = nodes, lines
        self.data_source = "network"
        self.validate_topology()

    def validate_topology(self):
        """Validate the processed nodes and lines.

        The nodes have to be indexed by contiguous integer bus ids 1..N, the lines
        must connect two distinct buses of the network, have a non-zero impedance and a
        finite, non-negative capacity.

        Raises
        ------
        InvalidTopologyError
            If the topology is not valid.
        """
        missing_columns = ([col for col in NODE_COLUMNS if col not in self.nodes.columns]
                           + [col for col in LINE_COLUMNS if col not in self.lines.columns])
        if missing_columns:
            raise InvalidTopologyError(f"Missing columns in nodes/lines: {missing_columns}")

        if not np.array_equal(self.nodes.index.values, np.arange(1, len(self.nodes) + 1)):
            raise InvalidTopologyError("Nodes have to be indexed by contiguous bus ids 1..N.")

        condition = ~(self.lines.node_i.isin(self.nodes.index) & self.lines.node_j.isin(self.nodes.index))
        if condition.any():
            raise InvalidTopologyError(f"Lines {list(self.lines.index[condition])} connect to unknown buses.")
        condition = self.lines.node_i == self.lines.node_j
        if condition.any():
            raise InvalidTopologyError(f"Lines {list(self.lines.index[condition])} are self-loops.")
        condition = (self.lines.r == 0) & (self.lines.x == 0)
        if condition.any():
            raise InvalidTopologyError(f"Lines {list(self.lines.index[condition])} have zero impedance.")
        condition = ~np.isfinite(self.lines.capacity.astype(float)) | (self.lines.capacity < 0)
        if condition.any():
            raise InvalidTopologyError(f"Lines {list(self.lines.index[condition])} have no valid capacity.")

        isolated = ~self.nodes.index.isin(np.concatenate([self.lines.node_i, self.lines.node_j]))
        if isolated.any():
            self.logger.warning("%d buses are not connected to any line.", isolated.sum())
        self.logger.info("Topology with %d nodes, %d lines in %d zones validated.",
                         len(self.nodes), len(self.lines), self.nodes.zone.nunique())
