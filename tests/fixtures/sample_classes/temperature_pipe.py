from framework import Pipe


@Pipe(name="temperature")
class TemperaturePipe:
    def transform(self, value: float, unit: str = "C"):
        if unit == "F":
            return value * 9 / 5 + 32
        return value
