from jobboard.schemas.profile import Principal, WireModel

JobId = int


class Job(WireModel):
    id: JobId
    title: str
    description: str
    location: str
    employment_type: str
    employer: Principal
    skills: list[str] = []
    published: bool = False
