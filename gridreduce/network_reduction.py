"""
GRIDREDUCE reduces large transmission networks to small equivalent networks.

GRIDREDUCE reduces a transmission network, with many buses grouped into zones, to an
equivalent network with a single representative node per zone. The equivalent
network is connected by synthetic lines whose capacities are chosen such that the
total transfer capacities (TTC) between the zones match the original network as
close as possible. This allows to use detailed network data in models that only
support, or are only tractable with, a zonal resolution.

Model Structure
---------------
The reduction is done in the following steps:

    - Data Management: Input data is read from an excel workbook or a folder of
      csv files, cleaned and converted to per-unit.
    - Original network: The admittance matrix is assembled and the power transfer
      distribution factors (PTDF) of all transactions between two buses on all
      lines are calculated. These yield the TTC of each transaction.
    - Representative nodes: In each zone the best connected bus is selected.
    - Kron reduction: All other buses are eliminated from the admittance matrix,
      the resulting reduced network has synthetic lines between the representative
      nodes. Their PTDFs are calculated analogously to the original network.
    - Capacity fitting: The capacities of the synthetic lines are obtained from a
      QP, MIQP or LP formulation, matching the TTC of the reduced network with the
      original TTC.
    - Results: The original and equivalent TTCs are compared and all results are
      exported as .csv files.

Examples
--------
The *examples* folder contains a small three zone network, which can be run with::

    $ python examples/run_gridreduce_example.py

"""

import datetime
import json
import logging
from pathlib import Path

import logaugment

import gridreduce.tools as tools
from gridreduce.data import DataManagement, ReductionResults
from gridreduce.exceptions import InvalidTopologyError
from gridreduce.grid import (SensitivityEngine, build_admittance_matrix, calculate_ttc,
                             canonical_transactions, capacity_lookup, kron_reduce,
                             select_representative_nodes, ttc_from_ptdf_table)
from gridreduce.optimization import CapacityFitter


def _logging_setup(wdir, logging_level=logging.INFO, file_logger=False):
    # Logging setup
    logger = logging.getLogger('log.gridreduce')
    logger.setLevel(logging_level)
    if not logger.handlers:
        logaugment.add(logger, tools._process_record)
        logger.addHandler(tools.TimeSinceLastLog())
        # create file handler which logs even debug messages
        if file_logger:
            if not wdir.joinpath("logs").is_dir():
                wdir.joinpath("logs").mkdir()
            file_handler = logging.FileHandler(wdir.joinpath("logs").joinpath('gridreduce.log'))
            file_handler.setLevel(logging.DEBUG)
            file_handler_formatter = logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s',
                                                       '%d.%m.%Y %H:%M')
            file_handler.setFormatter(file_handler_formatter)
            logger.addHandler(file_handler)

        console_handler = logging.StreamHandler()
        console_handler.setLevel(logging.INFO)
        console_handler_formatter = logging.Formatter('%(levelname)s - %(message)s')
        console_handler.setFormatter(console_handler_formatter)
        logger.addHandler(console_handler)

    return logger

class NetworkReduction():
    """
    The main module joins all components of GRIDREDUCE, providing accessibility to the user.

    At the center is an instance of the DataManagement module, that reads and
    processes input data. The reduction itself is run step by step in :meth:`~run`,
    each step storing its result in an instance of the ReductionResults module.

    Attributes
    ----------
    wdir : pathlib.Path
        Working directory, all necessary folders and results are stored in relation
        to this directory.
    options : dict
        Dictionary containing centralized all options relevant for the reduction.
        The options are categorized into:

            - data: base power, per-unit input and bus identification.
            - sensitivity: reference bus, tolerances and parallelization of the
              PTDF calculation.
            - optimization: formulation (QP, MIQP, LP), regularization, PTDF
              threshold and solver.
            - output: suffix of exported files and whether to export.

        Gets initialized with the input json file and receives default options based on the method
        :meth:`~gridreduce.tools.add_default_options`.
    data : :class:`~gridreduce.data.DataManagement`
        Instance of DataManagement class containing the processed input data.
        Is initialized empty, then data explicitly loaded.
    results : :class:`~gridreduce.data.ReductionResults`
        Results of the last reduction run.
    step_times : dict
        Seconds spent in each step of the last reduction run.

    Parameters
    ----------
    wdir : pathlib.Path
        Working directory.
    options_file : str, optional
        Providing the name of an option file, usually located in the
        ``/profiles`` folder. If not provided, using default options as
        defined in tools.
    """

    def __init__(self, wdir, options_file=None, logging_level=logging.INFO, file_logger=True):
        self.wdir = Path(wdir)
        tools.create_folder_structure(self.wdir)
        self.logger = _logging_setup(self.wdir, logging_level, file_logger)
        self._last_log = next(h for h in self.logger.handlers if isinstance(h, tools.TimeSinceLastLog))

        if not options_file:
            self.options = tools.default_options()
        else:
            self.initialize_options(options_file)
        self.data = DataManagement(self.options, self.wdir)
        self.results = None
        self.step_times = {}
        self.logger.info("GRIDREDUCE initialized!")

    def initialize_options(self, options_file):
        """Initialize options file.

        Parameters
        ----------
        options_file : str, optional
            Providing the name of an option file, usually located in the ``/profiles``
            folder. If not provided, using default options as defined in tools.
        """
        try:
            with open(self.wdir.joinpath(options_file)) as opt_file:
                loaded_options = json.load(opt_file)
            self.options = tools.add_default_options(loaded_options)
            self.logger.debug("Options:" + json.dumps(self.options, indent=2) + "\n")

        except FileNotFoundError:
            self.logger.warning("No or invalid options file provided, using default options")
            self.options = tools.default_options()
            self.logger.debug("Options:" + json.dumps(self.options, indent=2) + "\n")

    def load_data(self, filename):
        """Load data into :class:`~gridreduce.data.DataManagement` module.

        Parameters
        ----------
        filename : str
            Providing the name of a data file or folder, usually located in the
            ``/data_input`` folder. Excel files and folders of csv files are supported.
        """
        self.data.load_data(filename)

    def _step_done(self, step, message=""):
        """Log the completion of a step and store its duration.

        The duration is the time since the previous record of the main logger, which
        is available when logging at level INFO or below.
        """
        self.logger.info("Finished %s. %s", step.replace("_", " "), message)
        self.step_times[step] = self._last_log.value

    def run(self):
        """Run the network reduction with the loaded data.

        Returns
        -------
        results : :class:`~gridreduce.data.ReductionResults`
            Results of all steps of the reduction.

        Raises
        ------
        InvalidTopologyError
            If no data is loaded or the network cannot be reduced.
        """
        if self.data.nodes.empty:
            raise InvalidTopologyError("No data loaded, use load_data first.")
        start_time = datetime.datetime.now()
        self.logger.info("Starting network reduction of %s.", self.options["case_study"])
        self.data.nodes["is_representative"] = False
        self.results = ReductionResults(self.data, self.options)
        self.step_times = {}

        self.create_admittance_matrix()
        self.select_representative_nodes()
        self.analyse_original_network()
        self.reduce_network()
        self.analyse_reduced_network()
        self.fit_capacities()
        self.evaluate_reduced_network()

        if self.options["output"]["export"]:
            self.results.export()
        tools.print_timestep(start_time, self.logger, "Network reduction done.")
        return self.results

    def create_admittance_matrix(self):
        self.results.ybus = build_admittance_matrix(self.data.lines, self.data.nodes)
        self._step_done("admittance_matrix", "Original admittance matrix: %d x %d" % self.results.ybus.shape)

    def select_representative_nodes(self):
        tolerance = self.options["sensitivity"]["susceptance_tolerance"]
        self.results.representative_nodes = select_representative_nodes(
            self.results.ybus, self.data.nodes, tolerance)
        self._step_done("representative_nodes",
                        f"Representative nodes: {list(self.results.representative_nodes.bus)}")

    def _sensitivity_engine(self, ybus, bus_ids=None, reference_bus=None):
        options = self.options["sensitivity"]
        return SensitivityEngine(ybus, bus_ids=bus_ids, reference_bus=reference_bus,
                                 tolerance=options["susceptance_tolerance"],
                                 chunk_size=options["chunk_size"], workers=options["workers"])

    def analyse_original_network(self):
        """Calculate the PTDF and TTC of all transactions in the original network."""
        lines = self.data.lines
        engine = self._sensitivity_engine(self.results.ybus,
                                          reference_bus=self.options["sensitivity"]["reference_bus"])
        sensitivity = engine.line_sensitivity(lines)
        transactions, ptdf = engine.calculate_transaction_ptdfs(sensitivity=sensitivity)

        self.results.transactions_original = transactions
        self.results.ptdf_original_matrix = ptdf
        self.results.ttc_original = calculate_ttc(
            transactions, ptdf, lines.capacity.values, lines.node_i.values, lines.node_j.values,
            branch_labels=lines.index.values, epsilon=self.options["sensitivity"]["ttc_epsilon"])
        self._step_done("original_network_analysis")

    def reduce_network(self):
        representatives = list(self.results.representative_nodes.bus)
        if len(representatives) < 2:
            raise InvalidTopologyError("At least two zones are required for a network reduction.")
        self.results.ybus_reduced = kron_reduce(self.results.ybus, representatives)
        self._step_done("kron_reduction", "Reduced admittance matrix: %d x %d" % self.results.ybus_reduced.shape)

    def analyse_reduced_network(self):
        """Calculate the PTDF of all transactions on the synthetic lines of the reduced network."""
        representatives = list(self.results.representative_nodes.bus)
        reference_bus = self.options["sensitivity"]["reference_bus"]
        if reference_bus not in representatives:
            reference_bus = representatives[0]
        engine = self._sensitivity_engine(self.results.ybus_reduced, bus_ids=representatives,
                                          reference_bus=reference_bus)
        self.results.ptdf_reduced = engine.create_branch_ptdf_table(canonical_transactions(representatives))
        self._step_done("reduced_network_analysis")

    def fit_capacities(self):
        fitter = CapacityFitter(self.options)
        self.results.fitting = fitter.fit(self.results.ttc_original, self.results.ptdf_reduced)
        self._step_done("capacity_fitting", f"Solver status: {self.results.fitting.status}")
        if not self.results.fitting.optimal:
            self.logger.warning("Capacity fitting not optimal (%s), results may be inaccurate.",
                                self.results.fitting.status)

    def evaluate_reduced_network(self):
        """TTC of the reduced network with the fitted synthetic line capacities."""
        capacities = self.results.equivalent_capacities
        lookup = capacity_lookup(capacities.synth_line_from, capacities.synth_line_to,
                                 capacities.capacity)
        self.results.ttc_reduced = ttc_from_ptdf_table(
            self.results.ptdf_reduced, lookup, prefix="synth_line",
            epsilon=self.options["optimization"]["ptdf_epsilon"])
        self._step_done("reduced_network_evaluation")
