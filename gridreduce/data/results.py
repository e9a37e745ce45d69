import logging
from pathlib import Path

import numpy as np
import pandas as pd

from gridreduce.grid.sensitivity import create_ptdf_table


class ReductionResults():
    """Results of GRIDREDUCE make the outcome of a network reduction available to the user.

    The ReductionResults collect the intermediate and final results of all steps of
    the reduction, i.e. the admittance matrices, PTDFs and TTCs of the original and
    reduced network, the representative nodes and the fitted synthetic line
    capacities. It provides the comparison of original and equivalent TTCs and
    exports all relevant results as .csv files.

    Attributes
    ----------
    data : :class:`~gridreduce.data.DataManagement`
        An instance of the DataManagement class with the processed input data
        that is the basis of the results.
    ybus, ybus_reduced : scipy.sparse.csr_matrix
        Admittance matrix of the original and reduced network.
    representative_nodes : pandas.DataFrame
        Selected representative nodes.
    transactions_original : list(tuple)
        Canonical transactions of the original network.
    ptdf_original_matrix : np.ndarray
        PTDF (transactions x lines) of the original network.
    ptdf_reduced : pandas.DataFrame
        Long PTDF table of the reduced network (synthetic lines).
    ttc_original : pandas.DataFrame
        TTC of all transactions in the original network.
    fitting : types.SimpleNamespace
        Result of :meth:`~gridreduce.optimization.CapacityFitter.fit`.
    ttc_reduced : pandas.DataFrame
        TTC of the reduced network with the fitted capacities.

    Parameters
    ----------
    data : :class:`~gridreduce.data.DataManagement`
        An instance of the DataManagement class with the processed input data.
    options : dict
        The options from GRIDREDUCE.
    """

    def __init__(self, data, options):
        self.logger = logging.getLogger('log.gridreduce.data.ReductionResults')
        self.data = data
        self.options = options

        self.ybus = None
        self.ybus_reduced = None
        self.representative_nodes = pd.DataFrame()
        self.transactions_original = []
        self.ptdf_original_matrix = None
        self.ptdf_reduced = pd.DataFrame()
        self.ttc_original = pd.DataFrame()
        self.fitting = None
        self.ttc_reduced = pd.DataFrame()

    @property
    def ptdf_original(self):
        """Long PTDF table of the original network.

        Created on demand, as the table has one row for each transaction and line.
        """
        if self.ptdf_original_matrix is None:
            return pd.DataFrame()
        lines = self.data.lines
        return create_ptdf_table(self.transactions_original, self.ptdf_original_matrix,
                                 lines.node_i.values, lines.node_j.values,
                                 branch_labels=lines.index.values, prefix="line")

    @property
    def equivalent_capacities(self):
        """Fitted capacities of the synthetic lines."""
        return self.fitting.capacities if self.fitting is not None else pd.DataFrame()

    @property
    def ttc_equivalent(self):
        """Equivalent TTCs from the capacity fitting."""
        return self.fitting.ttc_equivalent if self.fitting is not None else pd.DataFrame()

    @property
    def solver_status(self):
        return self.fitting.status if self.fitting is not None else None

    @property
    def suffix(self):
        """Suffix of the exported files, defaults to the optimization type."""
        return self.options["output"]["suffix"] or self.options["optimization"]["type"]

    def ttc_original_representative(self):
        """Original TTCs of the canonical transactions between representative nodes."""
        representatives = self.representative_nodes.bus.values
        condition = (self.ttc_original.transaction_from.isin(representatives)
                     & self.ttc_original.transaction_to.isin(representatives)
                     & (self.ttc_original.transaction_from < self.ttc_original.transaction_to))
        return self.ttc_original[condition].reset_index(drop=True)

    def ttc_comparison(self):
        """Compare original and equivalent TTCs of the representative transactions.

        Returns
        -------
        comparison : pandas.DataFrame
            With bus names, TTC_Original_pu, TTC_Equivalent_pu, TTC_Mismatch_pu and
            TTC_Error_Pct (zero where undefined), the limiting line in the original
            network and the binding synthetic line. If available, the TTC of the
            reduced network with the fitted capacities is added as TTC_Reduced_pu.
        """
        keys = ["transaction_from", "transaction_to"]
        original = self.ttc_original_representative()
        equivalent = self.ttc_equivalent[keys + ["ttc_equivalent", "limiting_synth_line_from",
                                                 "limiting_synth_line_to"]]
        comparison = pd.merge(original, equivalent, on=keys, how="inner")

        names = self.data.nodes.name
        comparison["From_Name"] = names.loc[comparison.transaction_from].values
        comparison["To_Name"] = names.loc[comparison.transaction_to].values
        comparison = comparison.rename(columns={"ttc": "TTC_Original_pu",
                                                "ttc_equivalent": "TTC_Equivalent_pu"})
        comparison["TTC_Mismatch_pu"] = comparison.TTC_Equivalent_pu - comparison.TTC_Original_pu
        with np.errstate(divide="ignore", invalid="ignore"):
            comparison["TTC_Error_Pct"] = (comparison.TTC_Mismatch_pu / comparison.TTC_Original_pu)*100
        comparison["TTC_Error_Pct"] = comparison.TTC_Error_Pct.fillna(0)

        columns = ["From_Name", "To_Name", "transaction_from", "transaction_to",
                   "TTC_Original_pu", "TTC_Equivalent_pu", "TTC_Mismatch_pu", "TTC_Error_Pct",
                   "limiting_line", "limiting_line_from", "limiting_line_to",
                   "limiting_synth_line_from", "limiting_synth_line_to"]
        if not self.ttc_reduced.empty:
            reduced = self.ttc_reduced[keys + ["ttc"]].rename(columns={"ttc": "TTC_Reduced_pu"})
            comparison = pd.merge(comparison, reduced, on=keys, how="left")
            columns.append("TTC_Reduced_pu")
        return comparison[columns]

    def bus_id_map(self):
        """Mapping of the original bus names to bus ids."""
        return pd.DataFrame({"old_name": self.data.nodes.name.values,
                             "new_id": self.data.nodes.index.values})

    def line_details(self):
        """Line information with original bus names and bus ids."""
        columns = ["from_name", "to_name", "node_i", "node_j", "voltage", "length",
                   "capacity_mw", "capacity", "r", "x", "b", "is_tieline"]
        return self.data.lines[[col for col in columns if col in self.data.lines.columns]]

    def export(self, folder=None):
        """Export results as .csv files into folder.

        Parameters
        ----------
        folder : pathlib.Path, optional
            Output folder, defaults to data_output/*case_study* in the working directory.

        Returns
        -------
        folder : pathlib.Path
            The output folder.
        """
        if folder is None:
            folder = self.data.wdir.joinpath("data_output").joinpath(self.options["case_study"])
        folder = Path(folder)
        folder.mkdir(parents=True, exist_ok=True)
        self.logger.info("Exporting results to %s", str(folder))

        tables = {
            "Bus_ID_Map": (self.bus_id_map(), False),
            "Line_Details": (self.line_details(), True),
            "Representative_Nodes": (self.representative_nodes, False),
            "TTC_Original_Network": (self.ttc_original_representative(), False),
            "PTDF_Reduced_Network": (self.ptdf_reduced, False),
        }
        if self.fitting is not None:
            tables["Equivalent_Capacities"] = (self.equivalent_capacities, False)
            tables["TTC_Comparison"] = (self.ttc_comparison(), False)

        for name, (table, index) in tables.items():
            filepath = folder.joinpath(f"{name}_{self.suffix}.csv")
            table.to_csv(filepath, index=index)
            self.logger.debug("Exported %s", filepath.name)
        return folder
