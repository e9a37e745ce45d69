import logging

import pandas as pd

from gridreduce.exceptions import InvalidTopologyError

# Name of the raw data tables, as sheet name in excel and file name in a csv folder.
RAW_DATA = {"nodes": "Nodes", "lines": "Lines", "tielines": "Tielines", "generators": "Generators"}
REQUIRED_DATA = ["nodes", "lines"]


class DataWorker(object):
    """Data Worker Module reads data from disk.

    This module's purpose is to hide all the file system specific functions
    and allow for rather seemless data import.
    An instance of the DataManagement class acts as the carrier for the
    read data and is used as an attribute of DataWorker.

    Based on *file_path* the module imports an excel workbook with the sheets
    Nodes, Lines, Tielines and optionally Generators, or a folder containing the
    csv files nodes.csv, lines.csv, tielines.csv and optionally generators.csv.
    The raw tables are attached to the DataManagement instance for processing.

    Attributes
    ----------
    data : :class:`~gridreduce.data.DataManagement`
       An instance of the DataManagement class with processed input data.

    Parameters
    ----------
    data : :class:`~gridreduce.data.DataManagement`
       An instance of the DataManagement class with processed input data.
    file_path : pathlib.Path
        Filepath to input data.

    """

    def __init__(self, data, file_path):
        self.logger = logging.getLogger('log.gridreduce.data.DataWorker')
        self.data = data

        if file_path.suffix == ".xlsx":
            self.logger.info("Loading data from Excel file")
            self.read_xlsx(file_path)
        elif file_path.is_dir():
            self.logger.info("Loading data from folder")
            self.read_csv_folder(file_path)
        else:
            self.logger.error("Filepath: %s", str(file_path))
            self.logger.error("Data Type not supported, only .xlsx or folder")
            raise TypeError("Data Type not supported, only .xlsx or folder")

        missing_required = [data for data in REQUIRED_DATA if data in self.data.missing_data]
        if missing_required:
            raise InvalidTopologyError(f"Required input data {missing_required} not found.")

    def read_xlsx(self, xlsx_filepath):
        """Read excel file at specified filepath.

        Parameters
        ----------
        xlsx_filepath : pathlib.Path
            Filepath to input excel file.

        """
        xlsx = pd.ExcelFile(xlsx_filepath, engine="openpyxl")
        for data, sheet in RAW_DATA.items():
            if sheet in xlsx.sheet_names:
                raw_data = xlsx.parse(sheet).infer_objects()
                self._set_raw_data(data, raw_data)
            else:
                self.data.missing_data.append(data)
                self.logger.debug("Sheet %s not in %s", sheet, xlsx_filepath.name)

    def read_csv_folder(self, folder):
        """Read csv files from specified folder.

        Parameters
        ----------
        folder : pathlib.Path
            Path to folder containing input data .csv files.

        """
        for data in RAW_DATA:
            try:
                raw_data = pd.read_csv(folder.joinpath(data + ".csv")).infer_objects()
                self._set_raw_data(data, raw_data)
            except FileNotFoundError as error_msg:
                self.data.missing_data.append(data)
                self.logger.debug(error_msg)

    def _set_raw_data(self, data_name, data):
        """Attach raw data to DataManagement, dropping rows that are completely empty."""
        data = data.dropna(how="all")
        self.logger.debug("Read %d rows of %s", len(data), data_name)
        self.data.raw_data[data_name] = data
