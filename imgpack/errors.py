class ImgpackError(Exception):
    pass


class MetadataUnavailable(ImgpackError):
    pass


class ConfigError(ImgpackError):
    pass
