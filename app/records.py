"""Typed views over spreadsheet rows.

Rows are stored as plain column->value mappings. These models give the
join code typed access to the columns it needs; columns that are not
declared here are kept in the model's extra fields.
"""

from typing import Annotated, Any, Dict, Optional

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field

from app.utils import to_flag, to_number, to_text

Text = Annotated[str, BeforeValidator(lambda v: to_text(v).strip())]
Number = Annotated[Optional[float], BeforeValidator(to_number)]
Flag = Annotated[Optional[int], BeforeValidator(to_flag)]


class SheetRecord(BaseModel):
    """Base model for one spreadsheet row."""
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    @classmethod
    def from_row(cls, row: Dict[str, Any]):
        return cls.model_validate(row)


class Company(SheetRecord):
    company_name: Text = Field("", alias="Company Name")
    abbrv: Text = Field("", alias="Abbrv")
    group: Text = Field("", alias="Group")
    status: Number = Field(None, alias="Status")  # 0=Good, 1=Billing Issue, 2=Must Contact Office


class CoreInfrastructure(SheetRecord):
    client: Text = Field("", alias="Client")
    sub_name: Text = Field("", alias="SubName")
    name: Text = Field("", alias="Name")
    ip_address: Text = Field("", alias="IP address")
    description: Text = Field("", alias="Description")
    login: Text = Field("", alias="Login")
    notes: Text = Field("", alias="Notes")
    grouping: Text = Field("", alias="Grouping")
    cores: Number = Field(None, alias="Cores")
    ram_gb: Number = Field(None, alias="Ram (GB)")
    inactive: Flag = Field(None, alias="Inactive")


class User(SheetRecord):
    client: Text = Field("", alias="Client")
    sub_name: Text = Field("", alias="SubName")
    computer_name: Text = Field("", alias="Computer Name")
    name: Text = Field("", alias="Name")
    login: Text = Field("", alias="Login")
    phone: Text = Field("", alias="Phone")
    cell: Text = Field("", alias="Cell")
    active: Flag = Field(None, alias="Active")


class VirtualMachine(SheetRecord):
    client: Text = Field("", alias="Client")
    name: Text = Field("", alias="Name")
    ip: Text = Field("", alias="IP")
    host: Text = Field("", alias="Host")
    type: Text = Field("", alias="Type")
    grouping: Text = Field("", alias="Grouping")
    startup_memory_gb: Number = Field(None, alias="Startup memory (GB)")
    assigned_cores: Number = Field(None, alias="Assigned cores")
    active: Flag = Field(None, alias="Active")


class Container(SheetRecord):
    client: Text = Field("", alias="Client")
    name: Text = Field("", alias="Name")
    ip: Text = Field("", alias="IP")
    port: Number = Field(None, alias="Port")
    grouping: Text = Field("", alias="Grouping")
    host: Text = Field("", alias="Host")


class Daemon(SheetRecord):
    client: Text = Field("", alias="Client")
    name: Text = Field("", alias="Name")
    ip: Text = Field("", alias="IP")
    host: Text = Field("", alias="Host")
    user: Text = Field("", alias="User")
    inactive: Flag = Field(None, alias="Inactive")
