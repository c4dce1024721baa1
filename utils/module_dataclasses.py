from dataclasses import dataclass, fields
from pulumi import Input, Output


@dataclass
class MachineRecord:
    """
    Dataclass holding the login details exported for one lab machine.
    Args:
        stack (str): The lab stack the machine belongs to, e.g. `lab01`.
        role (str): The machine role within the stack.
        hostname (str): The computer name of the machine.
        os_type (str): `linux` or `windows`.
        username (str): The admin user name.
        public_ip (Input[str]): The static public IP address.
        private_ip (Input[str]): The private IP address on the stack subnet.
        password (Input[str]): The admin password. Always exported as a
            secret.
    """

    stack: str
    role: str
    hostname: str
    os_type: str
    username: str
    public_ip: Input[str]
    private_ip: Input[str]
    password: Input[str]

    def __post_init__(self):
        if not isinstance(self.password, Output):
            self.password = Output.secret(self.password)

    def to_output(self) -> dict:
        return {f.name: getattr(self, f.name) for f in fields(self)}
