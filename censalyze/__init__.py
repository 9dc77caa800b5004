import logging

from censalyze.api import CensusClient, CensusAPIError, CensusAPIKeyError
from censalyze.config import census_api_key, get_api_key
from censalyze.dataset import ACS, Decennial, Estimates, DatasetError, get_acs, get_decennial, get_estimates
from censalyze.variable import load_variables
from censalyze.pums import get_pums, pums_variables
from censalyze.survey import ReplicateWeightDesign, to_survey, weighted_count
from censalyze.moe import moe_sum, moe_prop, moe_ratio, moe_product, convert_moe, significance
from censalyze.boundaries import get_boundaries, attach_geometry
from censalyze.transform import shift_geometry
from censalyze.interpolate import interpolate_aw, interpolate_pw
from censalyze.regroup import Regrouper, AgeRegrouper, FIVE_RACE_REGROUPER
from censalyze.recode import StateRecoder, RecodeError

logging.getLogger(__name__).addHandler(logging.NullHandler())
