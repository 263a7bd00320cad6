"""
Centralized configuration for the configuration schema engine.

Every table the parser and the evaluator consult lives here as a single
dataclass so callers can override a piece without patching module globals.

Example:
    config = SchemaConfig(default_section="misc")
    schema = ConfigSchema.from_text(text, config=config)
"""

from dataclasses import dataclass, field
from typing import Dict, List


@dataclass
class SchemaConfig:
    """Tunable tables for parsing and evaluating a configuration."""

    # --- Sections ---
    default_section: str = "none"
    section_order: List[str] = field(default_factory=lambda: [
        "_", "test", "custom",
        "info", "machine", "eeprom",
        "stepper drivers", "extruder",
        "geometry", "homing", "?kinematics", "motion",
        "endstops", "?probe type", "probes", "bltouch", "leveling",
        "temperature", "bed temp", "fans",
        "advanced pause", "calibrate",
        "hotend temp", "chamber temp", "cnc",
        "?lcd", "custom main menu", "custom config menu", "custom buttons",
        "develop", "debug matrix",
        "delta", "scara", "tpara",
        "filament width", "gcode",
        "host", "i2c encoders", "i2cbus", "interface", "joystick", "lights",
        "mpctemp", "multi-material", "nanodlp", "network", "photo", "power",
        "psu control", "reporting", "safety", "security", "serial", "servos",
        "stats",
        "tmc/config", "tmc/hybrid", "tmc/serial", "tmc/smart", "tmc/spi",
        "tmc/stallguard", "tmc/status", "tmc/stealthchop", "tmc/tmc26x",
        "units", "volumetrics",
        "extras",
    ])

    # --- Parsing ---
    ignored_names: List[str] = field(default_factory=lambda: [
        "CONFIGURATION_H_VERSION",
        "CONFIGURATION_ADV_H_VERSION",
        "CONFIG_EXAMPLES_DIR",
        "LCD_HEIGHT",
    ])

    # Options that are mutually exclusive by firmware convention
    exclusive_groups: Dict[str, List[str]] = field(default_factory=lambda: {
        "kinematic": [
            "DELTA", "MORGAN_SCARA", "MP_SCARA", "AXEL_TPARA",
            "COREXY", "COREXZ", "COREYZ", "COREYX", "COREZX", "COREZY",
            "MARKFORGED_XY", "MARKFORGED_YX", "ARTICULATED_ROBOT_ARM",
            "FOAMCUTTER_XYUV", "POLAR",
        ],
        "toolhead": [
            "SINGLENOZZLE", "DUAL_X_CARRIAGE", "PARKING_EXTRUDER",
            "MAGNETIC_PARKING_EXTRUDER", "SWITCHING_TOOLHEAD",
            "MAGNETIC_SWITCHING_TOOLHEAD", "ELECTROMAGNETIC_SWITCHING_TOOLHEAD",
        ],
        "multi_extruder": [
            "MIXING_EXTRUDER", "SWITCHING_EXTRUDER", "SWITCHING_NOZZLE",
            "MK2_MULTIPLEXER", "PRUSA_MMU2",
        ],
        "probe": [
            "PROBE_MANUALLY", "FIX_MOUNTED_PROBE", "NOZZLE_AS_PROBE", "BLTOUCH",
            "TOUCH_MI_PROBE", "SOLENOID_PROBE", "Z_PROBE_SLED", "Z_PROBE_ALLEN_KEY",
            "RACK_AND_PINION_PROBE", "MAGLEV4", "BD_SENSOR", "MAG_MOUNTED_PROBE",
        ],
        "leveling": [
            "AUTO_BED_LEVELING_3POINT", "AUTO_BED_LEVELING_LINEAR",
            "AUTO_BED_LEVELING_BILINEAR", "AUTO_BED_LEVELING_UBL",
            "MESH_BED_LEVELING",
        ],
    })

    # --- Evaluation ---
    # Values for which ENABLED(NAME) is true, besides an empty switch
    enabled_values: List[str] = field(default_factory=lambda: ["", "1", "0x1", "true"])
    trinamic_drivers: List[str] = field(default_factory=lambda: [
        "TMC2130", "TMC2160", "TMC2208", "TMC2209", "TMC2660", "TMC5130", "TMC5160",
    ])
    thermocouple_sensors: List[int] = field(default_factory=lambda: [-5, -3, -2])
    temp_sensor_ids: List[str] = field(default_factory=lambda: [
        "0", "1", "2", "3", "4", "5", "6", "7",
        "BED", "PROBE", "CHAMBER", "COOLER", "BOARD", "SOC", "REDUNDANT",
    ])
    axis_names: List[str] = field(default_factory=lambda: list("XYZIJKUVW"))

    # --- Limits ---
    max_expansion_passes: int = 8
    max_cat_indirections: int = 8

    def group_for(self, name: str) -> str:
        """Return the exclusive group containing *name*, or an empty string."""
        for group, names in self.exclusive_groups.items():
            if name in names:
                return group
        return ""


DEFAULT_CONFIG = SchemaConfig()
