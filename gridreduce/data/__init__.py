"""Data Management of GRIDREDUCE which interfaces all components.

This module is divided into one main and three sub-modules:
    * :obj:`~gridreduce.data.DataManagement` : The main hub for the data. An
      instance of this class is attached to the NetworkReduction main module to
      provide access to all relevant data. It manages the read in of raw data,
      processing and validating the raw data.

This is done within the sub-modules:
    - :obj:`~gridreduce.data.DataWorker` : Reading in data from an excel file or
      a folder of csv files.
    - :mod:`~gridreduce.data.input_processing` : Cleaning of lines and tie-lines,
      numbering of buses and conversion to per-unit.
    - :obj:`~gridreduce.data.ReductionResults` : Collects the results of all steps of
      the reduction, compares original and equivalent TTCs and exports the results.

"""
from gridreduce.data.data import DataManagement
from gridreduce.data.results import ReductionResults
from gridreduce.data.worker import DataWorker
