"""VoxShop: a voice and text driven shopping-list manager."""
