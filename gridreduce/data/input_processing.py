"""Processing of raw input data into the nodes and lines tables of GRIDREDUCE.

The raw data follows the format of the network data sets, with nodes (Bus, Zone,
Area, PD, QD, GS, BS, Vm, Va, baseKV, Type) and lines/tie-lines (EIC_Code,
From_node, To_node, R, X, B, Capacity_MW, Voltage_level, Length_km). Line
parameters are either in ohm/µS or in per-unit.
"""
import logging

import numpy as np
import pandas as pd

from gridreduce.exceptions import InvalidTopologyError

logger = logging.getLogger('log.gridreduce.data.input_processing')

LINE_COLUMNS = ["EIC_Code", "From_node", "To_node", "R", "X", "B",
                "Capacity_MW", "Voltage_level", "Length_km"]


def _missing_code(code):
    return pd.isna(code) or str(code).strip() in ("", "-")

def _assign_fake_codes(lines, prefix):
    """Name lines without EIC code *prefix*_1, *prefix*_2, ..."""
    missing = lines.index[lines.EIC_Code.apply(_missing_code)]
    lines.loc[missing, "EIC_Code"] = [f"{prefix}_{i + 1}" for i in range(len(missing))]
    return lines

def clean_bus_name(name, bus_names_as_int=False):
    """Return the cleaned bus name used to match nodes and lines.

    Names are stripped and upper-case. If buses are identified by integers, the
    plain string of the integer is used, i.e. 1.0 and 1 both refer to bus "1".
    """
    if bus_names_as_int:
        if isinstance(name, float) and name.is_integer():
            name = int(name)
        return str(name).strip()
    return str(name).strip().upper()

def clean_line_data(lines):
    """Drop self-loops and name lines with missing EIC code *Fake_i*."""
    lines = lines.copy()
    lines["is_tieline"] = False
    self_loops = lines.From_node.astype(str).str.strip() == lines.To_node.astype(str).str.strip()
    if self_loops.any():
        logger.info("Removing %d lines connecting a bus to itself.", self_loops.sum())
    lines = lines[~self_loops].reset_index(drop=True)
    return _assign_fake_codes(lines, "Fake")

def process_tielines(tielines):
    """Prepare tie-lines, which may be listed multiple times in the raw data.

    Tie-lines are sorted by length in descending order and only the first (longest)
    entry of each EIC code is kept. Self-loops are removed and tie-lines without
    EIC code are named *Fake_Tie_i*.

    Tie-lines without EIC code are never considered duplicates of each other and are
    all kept. This differs from a deduplication on the code column alone, which
    treats all missing codes as equal and keeps only the longest code-less tie-line.
    """
    tielines = tielines.copy()
    tielines["is_tieline"] = True
    if "Length_km" in tielines.columns:
        tielines = tielines.sort_values("Length_km", ascending=False, kind="stable")

    missing = tielines.EIC_Code.apply(_missing_code)
    duplicates = tielines.EIC_Code.duplicated(keep="first") & ~missing
    if duplicates.any():
        logger.info("Removing %d duplicate tie-lines.", duplicates.sum())
    tielines = tielines[~duplicates]

    self_loops = tielines.From_node.astype(str).str.strip() == tielines.To_node.astype(str).str.strip()
    tielines = tielines[~self_loops].reset_index(drop=True)
    return _assign_fake_codes(tielines, "Fake_Tie")

def convert_line_to_pu(lines, base_mva, in_pu=False):
    """Add the per-unit line parameters r, x, b and capacity.

    Unless *in_pu*, R and X are given in ohm and B in µS, which are converted with
    the impedance base :math:`Z_{base} = V^2/S_{base}` of the line's voltage level.
    The capacity is converted from MW with the base power.
    """
    lines = lines.copy()
    if in_pu:
        lines["r"], lines["x"], lines["b"] = lines.R, lines.X, lines.B
    else:
        z_base = np.power(lines.Voltage_level.astype(float), 2) / base_mva
        lines["r"] = lines.R / z_base
        lines["x"] = lines.X / z_base
        lines["b"] = lines.B * 1e-6 * z_base
    lines["b"] = lines.b.fillna(0)
    lines["capacity"] = lines.Capacity_MW / base_mva
    return lines

def create_nodes(raw_nodes, base_mva, bus_names_as_int=False):
    """Create the nodes table, with bus ids 1..N in the order of the raw data."""
    def column(name, default):
        if name in raw_nodes.columns:
            return raw_nodes[name].fillna(default).values
        return np.full(len(raw_nodes), default)

    def as_string(values):
        return ["" if pd.isna(value) else str(value) for value in values]

    names = [clean_bus_name(name, bus_names_as_int) for name in raw_nodes.Bus]
    duplicates = pd.Series(names)[pd.Series(names).duplicated()].unique()
    if len(duplicates) > 0:
        raise InvalidTopologyError(f"Bus names are not unique: {list(duplicates)}")

    nodes = pd.DataFrame({
        "name": names,
        "zone": as_string(raw_nodes.Zone) if "Zone" in raw_nodes.columns else "",
        "area": as_string(raw_nodes.Area) if "Area" in raw_nodes.columns else "",
        "pd": column("PD", 0.0).astype(float) / base_mva,
        "qd": column("QD", 0.0).astype(float) / base_mva,
        "gs": column("GS", 0.0).astype(float),
        "bs": column("BS", 0.0).astype(float),
        "vm": column("Vm", 1.0).astype(float),
        "va": np.deg2rad(column("Va", 0.0).astype(float)),
        "base_kv": column("baseKV", 0.0).astype(float),
        "bus_type": column("Type", 1).astype(int),
        "is_representative": False,
    }, index=pd.RangeIndex(1, len(raw_nodes) + 1, name="bus"))
    return nodes

def number_buses(raw_nodes, lines, tielines, base_mva=100.0, in_pu=False, bus_names_as_int=False):
    """Number the buses and combine lines and tie-lines into the lines table.

    Bus names are cleaned in nodes, lines and tie-lines, see :func:`~clean_bus_name`.
    The buses are numbered 1..N in the order of the nodes and the line endpoints are
    replaced by these ids. Line parameters are converted to per-unit.

    Parameters
    ----------
    raw_nodes : pandas.DataFrame
        Raw nodes data.
    lines, tielines : pandas.DataFrame
        Lines and tie-lines, processed by :func:`~clean_line_data` and
        :func:`~process_tielines`.
    base_mva : float, optional
        Base power.
    in_pu : bool, optional
        Line parameters are given in per-unit.
    bus_names_as_int : bool, optional
        Buses are identified by integers.

    Returns
    -------
    nodes : pandas.DataFrame
        Nodes indexed by bus id.
    lines : pandas.DataFrame
        Lines and tie-lines indexed by EIC code.

    Raises
    ------
    InvalidTopologyError
        If a line connects to a bus that is not part of the nodes.
    """
    nodes = create_nodes(raw_nodes, base_mva, bus_names_as_int)
    bus_map = {name: bus for bus, name in nodes.name.items()}

    all_lines = pd.concat([df for df in [lines, tielines] if not df.empty], ignore_index=True)
    if all_lines.empty:
        raise InvalidTopologyError("The network contains no lines.")
    all_lines = convert_line_to_pu(all_lines, base_mva, in_pu)

    from_name = [clean_bus_name(name, bus_names_as_int) for name in all_lines.From_node]
    to_name = [clean_bus_name(name, bus_names_as_int) for name in all_lines.To_node]
    unknown = sorted(set(name for name in from_name + to_name if name not in bus_map))
    if unknown:
        raise InvalidTopologyError(f"Lines connect to buses not in nodes: {unknown}")

    result = pd.DataFrame({
        "node_i": [bus_map[name] for name in from_name],
        "node_j": [bus_map[name] for name in to_name],
        "from_name": from_name,
        "to_name": to_name,
        "r": all_lines.r.values.astype(float),
        "x": all_lines.x.values.astype(float),
        "b": all_lines.b.values.astype(float),
        "capacity": all_lines.capacity.values.astype(float),
        "capacity_mw": all_lines.Capacity_MW.values.astype(float),
        "voltage": all_lines.Voltage_level.values if "Voltage_level" in all_lines.columns else np.nan,
        "length": all_lines.Length_km.values if "Length_km" in all_lines.columns else np.nan,
        "is_tieline": all_lines.is_tieline.values.astype(bool),
    }, index=pd.Index(all_lines.EIC_Code.astype(str).values, name="line"))

    self_loops = result.node_i == result.node_j
    if self_loops.any():
        logger.warning("Removing %d lines connecting a bus to itself.", self_loops.sum())
        result = result[~self_loops]

    if result.index.duplicated().any():
        logger.warning("Line codes are not unique, adding suffix to duplicates.")
        suffix = result.groupby(level=0).cumcount().astype(str).values
        labels = result.index.values.astype(object)
        result.index = pd.Index(np.where(suffix == "0", labels, labels + "_" + suffix), name="line")

    logger.info("Processed %d nodes, %d lines and %d tie-lines.",
                len(nodes), (~result.is_tieline).sum(), result.is_tieline.sum())
    return nodes, result
