import datetime

from flux_dsl import Restrictions, from_, join
from flux_dsl.client import ClientConfig, QueryApi

# Build a query that can be rendered many times with different parameters.
cpu_usage = (
    from_("telegraf")
    .range()
    .with_property_named("start")
    .filter(
        Restrictions.and_(
            Restrictions.measurement().equal("cpu"),
            Restrictions.field().equal("usage_system"),
        )
    )
    .window(every=datetime.timedelta(minutes=5))
    .mean()
)
memory_usage = (
    from_("telegraf")
    .range()
    .with_property_named("start")
    .filter(Restrictions.measurement().equal("mem"))
    .last()
)
query = join({"cpu": cpu_usage, "mem": memory_usage}, on=["host"]).yield_(name="usage")
parameters = {"start": datetime.timedelta(hours=-1)}

# Run the query, using the INFLUX_URL, INFLUX_TOKEN and INFLUX_ORG environment variables.
with QueryApi(ClientConfig.from_env()) as query_api:
    for table in query_api.query(query, parameters=parameters):
        for record in table.records:
            print(record.get_time(), record["host"], record.get_value())
