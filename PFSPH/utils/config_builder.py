import os
import json
from typing import Dict, List, Optional, Any

import numpy as np

CONFIGURATION = "Configuration"
FLUID_BLOCKS = "FluidBlocks"
RIGID_BODIES = "RigidBodies"


class SimConfig:
    """Scene description read from a JSON file.

    ``Configuration`` holds the scalar simulation settings, ``FluidBlocks``
    the fluid lattices and ``RigidBodies`` the static boundary meshes. Any
    section may be left out of the file.
    """

    def __init__(self, scene_file_path: str) -> None:
        self.scene_file_path = scene_file_path
        self.scene_name = os.path.splitext(os.path.basename(scene_file_path))[0]
        with open(scene_file_path, "r") as f:
            self.config: Dict[str, Any] = json.load(f)
        if not isinstance(self.config.get(CONFIGURATION, {}), dict):
            raise ValueError(f"{scene_file_path}: '{CONFIGURATION}' must be an object")
        self.config.setdefault(CONFIGURATION, {})
        print(f"scene {self.scene_name}: {self.config[CONFIGURATION]}")

    @property
    def settings(self) -> Dict[str, Any]:
        return self.config[CONFIGURATION]

    def get_cfg(self, name: str, enforce_exist: bool = False, default: Any = None) -> Optional[Any]:
        """Setting ``name``, or ``default`` when the scene leaves it out.

        An explicit ``0`` or ``false`` in the scene is returned as is.
        """
        if enforce_exist:
            assert name in self.settings, f"missing configuration entry: {name}"
        value = self.settings.get(name)
        return default if value is None else value

    def get_vector(self, name: str, default) -> np.ndarray:
        return np.array(self.get_cfg(name, default=default), dtype=np.float64)

    def get_fluid_blocks(self) -> List[Dict[str, Any]]:
        return self.config.get(FLUID_BLOCKS, [])

    def get_rigid_bodies(self) -> List[Dict[str, Any]]:
        return self.config.get(RIGID_BODIES, [])
