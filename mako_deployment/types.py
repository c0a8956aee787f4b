import click


class MinInt(click.ParamType):
    name = "minint"

    def __init__(self, min_value):
        self.min_value = min_value

    def convert(self, value, param, ctx):
        try:
            ivalue = int(value)
        except ValueError:
            self.fail(f"{value} is not a valid integer", param, ctx)
        if ivalue < self.min_value:
            self.fail(
                f"{value} is less than the minimum allowed value of {self.min_value}", param, ctx
            )
        return ivalue


class PositiveFloat(click.ParamType):
    name = "positive_float"

    def convert(self, value, param, ctx):
        try:
            fvalue = float(value)
        except ValueError:
            self.fail(f"{value} is not a valid number", param, ctx)
        if fvalue <= 0:
            self.fail(f"{value} must be greater than zero", param, ctx)
        return fvalue


class ResumePoint(click.ParamType):
    """<ContractName>:<step>, e.g. TokenPaymaster:2"""

    name = "resume_point"

    def convert(self, value, param, ctx):
        if isinstance(value, tuple):
            return value
        contract_name, separator, step = value.rpartition(":")
        if not separator or not contract_name:
            self.fail(f"{value} is not of the form <ContractName>:<step>", param, ctx)
        try:
            step = int(step)
        except ValueError:
            self.fail(f"{step} is not a valid step number", param, ctx)
        if step < 1:
            self.fail("Steps are numbered from 1", param, ctx)
        return contract_name, step
