class ConfigurationAmbiguityError(ValueError):
    """Two axes cannot be told apart and no preference was supplied."""

    def __init__(self, channel_illumination: bool, angle_tile: bool):
        self.channel_illumination = channel_illumination
        self.angle_tile = angle_tile
        pairs = []
        if channel_illumination:
            pairs.append(
                "channels vs. illuminations (set prefer_channel_over_illumination)"
            )
        if angle_tile:
            pairs.append("tiles vs. angles (set prefer_tile_over_angle)")
        super().__init__(
            "Cannot distinguish " + " and ".join(pairs) + " from the file metadata."
        )


class UnsupportedInputError(ValueError):
    """Input data that the axis model cannot represent, e.g. RGB pixels."""
