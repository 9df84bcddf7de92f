from ccdrefl.core.frame import FrameRecord

__all__ = ["FrameRecord"]
