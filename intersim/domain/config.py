# Simulation Configuration

# Timing
PHYSICS_DT = 3.5 / 30    # Seconds per physics tick (timewarp / fps)
MAX_FRAME_TIME = 0.05    # Cap on wall time consumed per frame
MAX_TICKS_PER_FRAME = 5
STATS_LOG_INTERVAL = 5.0 # Seconds of simulated time between statistics log lines

# Road Geometry
ROAD_LENGTH = 200.0
LANE_WIDTH = 3.0
N_LANES = 2
BOUNDARY_OVERSHOOT = 10.0  # Vehicles are dropped past length + overshoot
STOP_LINE_MAIN = 88.0      # East/West roads pass through the junction centre at u=100
STOP_LINE_APPROACH = 180.0 # North/South approach roads end just before the junction
TURN_OFFSET = 4.0          # Turn paths start this far past the stop line
LEN_RIGHT = 11.78          # 90 degree arc with radius 7.5
LEN_LEFT = 17.67           # 90 degree arc with radius 11.25
RADIUS_RIGHT = 7.5
RADIUS_LEFT = 11.25
U_TARGET_EXIT = 2.0        # Entry offset on the north/south exit roads
U_TARGET_MAIN = 112.0      # Entry offset on a main road after turning into it
STRAIGHT_SOURCE = 200.0    # North/South through traffic hands over at the road end

# Vehicle Dimensions (length, width)
CAR_LENGTH = 5.0
CAR_WIDTH = 2.5
TRUCK_LENGTH = 10.0
TRUCK_WIDTH = 3.0

# IDM
IDM_V0 = 15.0
IDM_T = 1.0
IDM_S0 = 2.0
IDM_A = 2.0
IDM_B = 2.0
IDM_BMAX = 6.0
SPEED_MAX = 60.0
FREE_GAP = 1000.0        # Nominal gap used when there is no leader
MIN_GAP_CLAMP = 0.1
DRIVER_VARIANCE = 0.2    # Initial driver factor spread (0.9 .. 1.1)
DRIVER_DRIFT_AMPLITUDE = 0.05  # Per-tick driver factor drift amplitude
DRIVER_FACTOR_MIN = 0.7
DRIVER_FACTOR_MAX = 1.3
ACC_CLAMP_MIN = -6.0
ACC_CLAMP_MAX = 3.0

# MOBIL
MOBIL_SAFE_DECEL = 4.0
LC_MANDATORY_RIGHT = (0.1, 0.2, 0.5)   # politeness, threshold, right bias
LC_MANDATORY_LEFT = (0.1, 0.2, -0.5)
LC_TACTICAL = (0.3, 0.3, 0.2)
LC_NORMAL = (0.5, 0.5, 0.1)
LANE_CHANGE_DURATION = 4.0
LANE_CHANGE_COOLDOWN = 4.0
LANE_CHANGE_DISTANCE = 50.0  # Mandatory changes are armed this far before a turn
TACTICAL_DISTANCE = 100.0

# Inflow
SPAWN_U = 5.0
SPAWN_CLEARANCE = 15.0
SPEED_INIT = 15.0
SPEED_INIT_SPREAD = 5.0
RIGHT_SHARE_OF_TURNS = 0.625  # 0.25 / 0.40 of turning traffic turns right

# Traffic Rules
WAITING_SPEED = 2.0
FIXED_CLEARANCE_TIME = 3.0
ADAPTIVE_CLEARANCE_TIME = 2.0
ADAPTIVE_SWITCH_RATIO = 1.5   # Competing pair must beat the active one by 50%
ADAPTIVE_SWITCH_FLOOR = 10.0  # ...and exceed this absolute score
TURN_PROBABILITY_TOLERANCE = 0.01

# Flow Analysis
ANALYSIS_BINS = 10
BOTTLENECK_SPEED_RATIO = 0.3
BOTTLENECK_DENSITY = 0.05     # veh/m

# Defaults at the collaborator boundary (times in milliseconds)
DEFAULT_SETTINGS = {
    "GREEN_DURATION": 100000,
    "YELLOW_DURATION": 5000,
    "RED_DURATION": 100000,
    "MIN_GREEN_TIME": 5000,
    "CAR_SPAWN_RATE": 4,
    "CAR_SPEED": 25,
    "DETECTOR_DISTANCE": 80,
    "TURN_RATE": 0.4,
}
