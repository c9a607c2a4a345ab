# Built-in skill taxonomy: canonical skill -> textual variants found in resumes.
# Override with a JSON file of the same shape via SKILL_TAXONOMY_PATH.

DEFAULT_SKILL_CATEGORIES = {
    "java": {"java", "j2ee", "java ee", "jakarta ee"},
    "spring": {"spring", "spring boot", "springboot", "spring framework", "spring mvc"},
    "hibernate": {"hibernate", "jpa"},
    "python": {"python", "python3"},
    "django": {"django"},
    "flask": {"flask"},
    "javascript": {"javascript", "js", "ecmascript"},
    "typescript": {"typescript"},
    "react": {"react", "reactjs", "react.js"},
    "angular": {"angular", "angularjs"},
    "node.js": {"node.js", "nodejs", "node js"},
    "c++": {"c++", "cpp"},
    "c#": {"c#", "csharp", ".net", "dotnet"},
    "go": {"golang"},
    "kotlin": {"kotlin"},
    "sql": {"sql", "mysql", "postgresql", "postgres", "oracle", "sql server"},
    "mongodb": {"mongodb", "mongo"},
    "redis": {"redis"},
    "kafka": {"kafka", "apache kafka"},
    "aws": {"aws", "amazon web services", "ec2", "s3", "lambda"},
    "azure": {"azure", "microsoft azure"},
    "gcp": {"gcp", "google cloud"},
    "docker": {"docker", "containerization"},
    "kubernetes": {"kubernetes", "k8s"},
    "microservices": {"microservices", "microservice", "micro-services"},
    "rest": {"rest", "restful", "rest api"},
    "git": {"git", "github", "gitlab"},
    "jenkins": {"jenkins"},
    "ci/cd": {"ci/cd", "continuous integration", "continuous delivery"},
    "linux": {"linux", "unix"},
    "agile": {"agile", "scrum", "kanban"},
    "machine learning": {"machine learning", "ml", "deep learning"},
}
