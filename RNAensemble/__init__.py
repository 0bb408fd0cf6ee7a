import os
import yaml

__version__ = "0.1.0"

PACKAGEDIR = os.path.dirname(os.path.abspath(__file__))

CONFIG_FILE = os.path.join(PACKAGEDIR, "ensembleConfig.yaml")
assert os.path.exists(CONFIG_FILE), "Config file does not exist"
with open(CONFIG_FILE, "r") as handle:
    CONFIG = yaml.load(handle, Loader=yaml.SafeLoader)

EXTERNAL_CONFIG_FILE = os.getenv('RNAENSEMBLE_CONFIG_FILE')
if EXTERNAL_CONFIG_FILE:
    with open(EXTERNAL_CONFIG_FILE, "r") as handle:
        EXTERNAL_CONFIG = yaml.load(handle, Loader=yaml.SafeLoader)

    CONFIG.update(EXTERNAL_CONFIG)
