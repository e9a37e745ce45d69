"""Three Zone Example."""
from pathlib import Path

import gridreduce

# Init GRIDREDUCE with the options file and the dataset
wdir = Path(__file__).parent # Change to local copy of examples folder
reduction = gridreduce.NetworkReduction(wdir=wdir, options_file="profiles/three_zone.json")
reduction.load_data("data_input/three_zone_case")

# %% Access the processed data
nodes = reduction.data.nodes
lines = reduction.data.lines

# %% Run the reduction with the QP formulation
results = reduction.run()
print(results.representative_nodes)
print(results.equivalent_capacities)
print(results.ttc_comparison())

# %% Rerun with the MIQP formulation, which identifies the binding synthetic line
reduction.options["optimization"]["type"] = "MIQP"
results_miqp = reduction.run()
print(results_miqp.ttc_comparison()[["From_Name", "To_Name", "TTC_Original_pu", "TTC_Equivalent_pu",
                                     "limiting_synth_line_from", "limiting_synth_line_to"]])
