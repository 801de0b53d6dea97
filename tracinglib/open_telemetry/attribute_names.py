class TracingAttributeNames:
    # Resource attributes read from the deployment environment
    INSTANCE_NAMESPACE: str = "instance.namespace"
    INSTANCE_IP: str = "instance.ip"


class B3HeaderNames:
    # Multi-header B3 propagation
    CONTEXT: str = "b3"
    TRACE_ID: str = "x-b3-traceid"
    SPAN_ID: str = "x-b3-spanid"
    SAMPLED: str = "x-b3-sampled"
    PARENT_SPAN_ID: str = "x-b3-parentspanid"
    FLAGS: str = "x-b3-flags"
